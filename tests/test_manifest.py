from __future__ import annotations

import json

import pytest

from schema_mirror.tooling.errors import ParseError, SchemaError
from schema_mirror.tooling.hashing import hash_bytes, hash_file
from schema_mirror.tooling.manifest import parse_manifest, read_local_manifest, write_manifest


def test_hash_is_stable_and_sensitive_to_single_byte_changes(tmp_path) -> None:
    digest = hash_bytes(b"export default {}")

    assert digest == hash_bytes(b"export default {}")
    assert len(digest) == 64
    assert hash_bytes(b"export default {!") != digest

    path = tmp_path / "schema.mjs"
    path.write_bytes(b"export default {}")
    assert hash_file(path) == digest
    assert hash_file(tmp_path / "missing.mjs") is None


def test_parse_manifest_normalises_shared_entries_and_keeps_unknown_keys() -> None:
    manifest = parse_manifest(
        json.dumps(
            {
                "name": "acme",
                "schemaSpec": "1.2.0",
                "shared": ["_lists/chains.json", {"file": "_lists/countries.json"}],
                "schemas": [
                    {"namespace": "acme", "file": "a.mjs", "requiredServerParams": None, "homepage": "https://acme.test"},
                    {"namespace": "acme", "file": "_lists/chains.json"},
                ],
                "maintainer": "ops",
            }
        )
    )

    assert manifest.shared_files() == ["_lists/chains.json", "_lists/countries.json"]
    assert manifest.file_list() == ["_lists/chains.json", "_lists/countries.json", "a.mjs"]
    assert manifest.schemas[0].required_server_params == []
    payload = manifest.to_payload()
    assert payload["maintainer"] == "ops"
    assert payload["schemas"][0]["homepage"] == "https://acme.test"
    assert payload["schemaSpec"] == "1.2.0"


def test_parse_manifest_rejects_bad_documents() -> None:
    with pytest.raises(ParseError):
        parse_manifest(b"<html>")
    with pytest.raises(SchemaError) as excinfo:
        parse_manifest(json.dumps({"name": "acme", "schemas": {}}))
    assert "schemas" in excinfo.value.message
    with pytest.raises(SchemaError):
        parse_manifest(json.dumps({"name": "acme", "schemas": [{"namespace": "acme"}]}))


def test_local_manifest_round_trip_and_corrupt_copy(tmp_path) -> None:
    path = tmp_path / "acme" / "_registry.json"
    manifest = parse_manifest(json.dumps({"name": "acme", "schemas": [{"file": "a.mjs"}]}))
    write_manifest(path, manifest.model_copy(update={"local_hashes": {"a.mjs": "0" * 64}}))

    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored["localHashes"] == {"a.mjs": "0" * 64}
    assert read_local_manifest(path).local_hashes == {"a.mjs": "0" * 64}

    path.write_text("{", encoding="utf-8")
    assert read_local_manifest(path) is None
    assert read_local_manifest(tmp_path / "absent.json") is None

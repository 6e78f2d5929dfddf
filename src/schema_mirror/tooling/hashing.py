"""Content hashing helpers used by both the mirror and the artifact cache."""

from __future__ import annotations

import hashlib
from pathlib import Path

__all__ = ["hash_bytes", "hash_file"]

_CHUNK_SIZE = 64 * 1024


def hash_bytes(content: bytes) -> str:
    """Return the 64-character SHA-256 hex digest of ``content``."""
    return hashlib.sha256(content).hexdigest()


def hash_file(path: Path) -> str | None:
    """Return the SHA-256 digest of the file at ``path``, or ``None`` when it does not exist."""
    digest = hashlib.sha256()
    try:
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
    except (FileNotFoundError, IsADirectoryError):
        return None
    return digest.hexdigest()

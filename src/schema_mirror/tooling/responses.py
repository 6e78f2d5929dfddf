"""Uniform response envelope used by the CLI for human and ``--json`` output."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, MutableMapping, Sequence

__all__ = ["ResponsePayload", "WorkspaceResponse"]

ResponsePayload = Mapping[str, Any]
ResponseStatus = Literal["success", "error"]


@dataclass(slots=True, frozen=True)
class WorkspaceResponse:
    status: ResponseStatus
    message: str
    payload: ResponsePayload = field(default_factory=dict)
    errors: tuple[str, ...] = ()
    fix: str | None = None
    source: str | None = None

    @classmethod
    def ok(cls, payload: ResponsePayload | None = None, *, message: str = "OK", source: str | None = None) -> "WorkspaceResponse":
        return cls(status="success", message=message, payload=dict(payload or {}), source=source)

    @classmethod
    def error(
        cls,
        message: str,
        *,
        errors: Sequence[str] = (),
        fix: str | None = None,
        payload: ResponsePayload | None = None,
        source: str | None = None,
    ) -> "WorkspaceResponse":
        return cls(
            status="error",
            message=message,
            payload=dict(payload or {}),
            errors=tuple(errors),
            fix=fix,
            source=source,
        )

    def to_dict(self) -> MutableMapping[str, Any]:
        data: MutableMapping[str, Any] = {
            "status": self.status,
            "message": self.message,
            "payload": dict(self.payload),
            "errors": list(self.errors),
        }
        if self.fix:
            data["fix"] = self.fix
        if self.source:
            data["source"] = self.source
        return data

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

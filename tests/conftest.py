from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import pytest

from schema_mirror.tooling.config import MirrorStore
from schema_mirror.tooling.fetcher import RemoteFetcher


class FakeRegistry:
    """In-memory HTTP host served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.statuses: dict[str, int] = {}
        self.raises: dict[str, Callable[[httpx.Request], Exception]] = {}
        self.requests: list[str] = []

    def publish(self, url: str, content: bytes | str | dict[str, Any] | list[Any]) -> None:
        if isinstance(content, (dict, list)):
            content = json.dumps(content)
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.files[url] = content
        self.statuses.pop(url, None)
        self.raises.pop(url, None)

    def fail(self, url: str, status: int) -> None:
        self.statuses[url] = status

    def time_out(self, url: str) -> None:
        self.raises[url] = lambda request: httpx.ReadTimeout("timed out", request=request)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url in self.raises:
            raise self.raises[url](request)
        if url in self.statuses:
            return httpx.Response(self.statuses[url])
        if url in self.files:
            return httpx.Response(200, content=self.files[url])
        return httpx.Response(404)

    def fetcher(self) -> RemoteFetcher:
        return RemoteFetcher(timeout=1.0, http_client=httpx.Client(transport=httpx.MockTransport(self.handler)))


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def store(tmp_path) -> MirrorStore:
    return MirrorStore(root=tmp_path / "store")


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc))

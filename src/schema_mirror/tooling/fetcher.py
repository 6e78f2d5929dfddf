"""
HTTP client used to pull manifests and schema files from remote registries.

Requests are issued one at a time with a bounded timeout. Every failure
(connection error, timeout, non-2xx status) is normalised into a
:class:`~schema_mirror.tooling.errors.FetchError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, MutableMapping

import httpx

from .. import __version__
from .errors import FetchError

LOGGER = logging.getLogger(__name__)

__all__ = ["RemoteFetcher"]


@dataclass(slots=True)
class RemoteFetcher:
    """Lightweight GET-only client for registry hosts."""

    timeout: float = 10.0
    user_agent: str | None = None
    http_client: httpx.Client | None = None
    _default_headers: Mapping[str, str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        agent = self.user_agent or f"Schema-Mirror/{__version__} (RemoteFetcher)"
        headers: MutableMapping[str, str] = {
            "User-Agent": agent,
        }
        object.__setattr__(self, "_default_headers", headers)

    def fetch_bytes(self, url: str) -> bytes:
        """Return the body of ``url``; raise :class:`FetchError` on any failure."""

        LOGGER.debug("Fetching %s", url)
        try:
            response = self._get(url, headers=self._default_headers)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            LOGGER.exception("Request to %s timed out", url)
            raise FetchError(f"Timed out after {self.timeout:g}s fetching {url}") from exc
        except httpx.InvalidURL as exc:
            raise FetchError(
                f"Invalid URL {url!r}: {exc}",
                fix="Check the registry URL and the file names it lists.",
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            reason = exc.response.reason_phrase
            raise FetchError(f"HTTP {status}: {reason}".rstrip(": ")) from exc
        except httpx.HTTPError as exc:
            LOGGER.exception("Request to %s failed", url)
            raise FetchError(f"HTTP error fetching {url}: {exc}") from exc
        return response.content

    def _get(self, url: str, *, headers: Mapping[str, str]) -> httpx.Response:
        if self.http_client is not None:
            return self.http_client.get(url, headers=headers, timeout=self.timeout, follow_redirects=True)
        return httpx.get(url, headers=headers, timeout=self.timeout, follow_redirects=True)

"""
Framework-agnostic view of the current HTTP request.

Producers that enrich items with request data (error reports, events, page
visits, browser errors) read a :class:`RequestInfo` instead of a framework
request object. ``from_starlette`` adapts FastAPI/Starlette requests; other
frameworks can build one directly.

Tags:
    request, http, adapter, sorane
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlsplit

from sorane.core.hashing import compute_hash
from sorane.core.timestamps import Clock, utc_now


@dataclass(frozen=True)
class RequestInfo:
    """Minimal request snapshot used by producers."""

    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    ip: str | None = None

    def __post_init__(self) -> None:
        # Header lookups are case-insensitive
        object.__setattr__(self, "headers", {k.lower(): v for k, v in self.headers.items()})

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def query(self) -> dict[str, str]:
        parsed = parse_qs(urlsplit(self.url).query, keep_blank_values=False)
        return {k: v[0] for k, v in parsed.items() if v}

    @property
    def user_agent(self) -> str | None:
        return self.header("user-agent")

    @property
    def referer(self) -> str | None:
        return self.header("referer")

    @classmethod
    def from_starlette(cls, request: Any) -> RequestInfo:
        """Build from a ``starlette.requests.Request`` (FastAPI's request type)."""
        client = getattr(request, "client", None)
        return cls(
            url=str(request.url),
            method=request.method,
            headers=dict(request.headers),
            ip=client.host if client else None,
        )


def user_agent_hash(request: RequestInfo | None) -> str | None:
    """SHA-256 of the full user agent, or ``None`` without one."""
    if request is None or not request.user_agent:
        return None
    return compute_hash(request.user_agent)


def session_id_hash(request: RequestInfo | None, clock: Clock = utc_now) -> str | None:
    """Daily-rotating, non-persistent session hash: ``sha256(ip|ua[:100]|YYYY-MM-DD)``."""
    if request is None:
        return None
    return compute_hash(request.ip or "", (request.user_agent or "")[:100], clock().strftime("%Y-%m-%d"))


__all__ = ["RequestInfo", "user_agent_hash", "session_id_hash"]

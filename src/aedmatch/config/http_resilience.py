"""Retry, throttling and cache settings for the dashboard HTTP client.

Reads are safe to replay; writes (match-basket POST/DELETE) never are. The
transport therefore only retries ``allowed_methods`` and a failed write is
reported to the operator as retryable or not through ``write_is_retryable``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

import httpx

if TYPE_CHECKING:
    from collections.abc import Mapping

READ_METHODS = frozenset({"GET", "HEAD"})
# a later attempt after re-checking conflicts can succeed
RETRYABLE_WRITE_STATUSES = frozenset({408, 409, 429})


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    total: int = 2
    backoff_factor: float = 0.5
    max_backoff_wait: float = 10.0
    respect_retry_after_header: bool = True
    allowed_methods: frozenset[str] = READ_METHODS
    status_forcelist: frozenset[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )
    backoff_jitter: float = 1.0
    retryable_write_statuses: frozenset[int] = RETRYABLE_WRITE_STATUSES

    def write_is_retryable(self, status_code: int) -> bool:
        """Whether the operator may resubmit a write the server rejected with ``status_code``."""

        return status_code >= 500 or status_code in self.retryable_write_statuses


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float


@dataclass(slots=True, frozen=True)
class CacheConfig:
    """Candidate-list response cache; off unless a TTL is configured."""

    enabled: bool = False
    backend: Literal["sqlite", "memory"] = "sqlite"
    sqlite_path: str | None = None
    default_ttl_seconds: float | None = None
    refresh_ttl_on_access: bool = False

    @classmethod
    def from_ttl(cls, ttl_seconds: float | None) -> CacheConfig:
        if ttl_seconds is None or ttl_seconds <= 0:
            return cls()
        return cls(enabled=True, default_ttl_seconds=ttl_seconds)


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    base_url: str | None = None
    timeout_seconds: float = 10.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    cache: CacheConfig | None = field(default_factory=CacheConfig)
    default_headers: Mapping[str, str] | None = None

"""Dashboard API configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .env import require_env_vars
from .errors import InvalidConfigurationValueError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig

DASHBOARD_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True, slots=True)
class DashboardConfig:
    """Holds the host dashboard's API location and credentials."""

    base_url: str
    api_token: str
    resilience: ResilienceConfig


def _cache_config() -> CacheConfig:
    """Candidate responses are cached only when ``AEDMATCH_DASHBOARD_CACHE_TTL`` is set."""

    raw = os.getenv("AEDMATCH_DASHBOARD_CACHE_TTL")
    if raw is None or not raw.strip():
        return CacheConfig()
    try:
        return CacheConfig.from_ttl(float(raw))
    except ValueError as exc:
        raise InvalidConfigurationValueError(
            "AEDMATCH_DASHBOARD_CACHE_TTL", raw, expected="seconds"
        ) from exc


def get_dashboard_config(
    *,
    resilience: ResilienceConfig | None = None,
    timeout_seconds: float | None = None,
) -> DashboardConfig:
    values = require_env_vars(("AEDMATCH_DASHBOARD_URL", "AEDMATCH_DASHBOARD_TOKEN"))
    base_url = values["AEDMATCH_DASHBOARD_URL"].rstrip("/")
    return DashboardConfig(
        base_url=base_url,
        api_token=values["AEDMATCH_DASHBOARD_TOKEN"],
        resilience=resilience
        or ResilienceConfig(
            name="dashboard",
            base_url=base_url,
            timeout_seconds=timeout_seconds or DASHBOARD_TIMEOUT_SECONDS,
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            cache=_cache_config(),
        ),
    )

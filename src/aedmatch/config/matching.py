"""Matching engine defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import InvalidConfigurationValueError

DEFAULT_TARGET_YEAR = 2025
DEFAULT_LOW_CONFIDENCE_THRESHOLD = 90.0
DEFAULT_CONFLICT_CHECK_TIMEOUT_SECONDS = 10.0
DEFAULT_CANDIDATE_LIMIT = 200


@dataclass(frozen=True, slots=True)
class MatchingConfig:
    """Matching defaults.

    ``conflict_check_timeout_seconds`` bounds the existing-match lookup on both
    backends. The dashboard enforces it as the HTTP timeout; the local store turns
    it into a PostgreSQL ``statement_timeout`` and checks the elapsed time for
    other dialects, which cannot cancel a running query. ``0`` disables it.
    """

    year: int = DEFAULT_TARGET_YEAR
    low_confidence_threshold: float = DEFAULT_LOW_CONFIDENCE_THRESHOLD
    conflict_check_timeout_seconds: float | None = DEFAULT_CONFLICT_CHECK_TIMEOUT_SECONDS
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT


def _env_number[T: (int, float)](name: str, cast: type[T], default: T) -> T:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError as exc:
        raise InvalidConfigurationValueError(name, raw, expected=cast.__name__) from exc
    if value < 0:
        raise InvalidConfigurationValueError(name, raw, expected="a non-negative number")
    return value


def get_matching_config() -> MatchingConfig:
    timeout = _env_number(
        "AEDMATCH_CONFLICT_TIMEOUT", float, DEFAULT_CONFLICT_CHECK_TIMEOUT_SECONDS
    )
    return MatchingConfig(
        year=_env_number("AEDMATCH_YEAR", int, DEFAULT_TARGET_YEAR),
        low_confidence_threshold=_env_number(
            "AEDMATCH_LOW_CONFIDENCE_THRESHOLD", float, DEFAULT_LOW_CONFIDENCE_THRESHOLD
        ),
        conflict_check_timeout_seconds=timeout or None,
        candidate_limit=_env_number("AEDMATCH_CANDIDATE_LIMIT", int, DEFAULT_CANDIDATE_LIMIT),
    )

"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class MatchClassification(StrEnum):
    """Where one equipment serial currently stands relative to a target institution."""

    UNMATCHED = "unmatched"
    ALREADY_MATCHED_TO_TARGET = "already_matched_to_target"
    MATCHED_TO_OTHER = "matched_to_other"


class MatchAction(StrEnum):
    MATCH = "match"
    UNMATCH = "unmatch"


class MatchingMethod(StrEnum):
    MANUAL = "manual"
    AUTO = "auto"

"""Public interface for the dashboard compliance API adapter."""

from __future__ import annotations

from .client import (
    DashboardAPIError,
    DashboardCandidateSource,
    DashboardConflictChecker,
    DashboardMatchCommitter,
)
from .schema import CandidatePayload, CandidatesResponse, CheckExistingMatchesResponse
from .translator import parse_candidates, parse_conflict_report, parse_equipment_group

__all__ = [
    "CandidatePayload",
    "CandidatesResponse",
    "CheckExistingMatchesResponse",
    "DashboardAPIError",
    "DashboardCandidateSource",
    "DashboardConflictChecker",
    "DashboardMatchCommitter",
    "parse_candidates",
    "parse_conflict_report",
    "parse_equipment_group",
]

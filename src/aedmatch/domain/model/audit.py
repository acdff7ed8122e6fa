"""Audit records for match and unmatch decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .enums import MatchAction

if TYPE_CHECKING:
    from .primitives import ManagementNumber, TargetKey, Year


@dataclass(eq=False, kw_only=True)
class MatchLogEntry:
    """One committed change to an institution's device assignment."""

    action: MatchAction = MatchAction.MATCH
    year: Year
    target_key: TargetKey
    management_numbers: tuple[ManagementNumber, ...] = ()
    reason: str | None = None
    user_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

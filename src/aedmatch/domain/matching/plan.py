"""Resolution plan types shared by the resolver, the workflow and committers.

The plan is the contract between conflict review and the match committer. It
is built fresh for every commit attempt and never persisted; only its effects
are.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aedmatch.domain.model import EquipmentSerial


class Strategy(StrEnum):
    """How the committer applies a basket."""

    ADD = "add"
    REPLACE = "replace"
    CANCEL = "cancel"


class Scenario(StrEnum):
    """Which resolution rule produced a plan."""

    NO_CONFLICT = "no_conflict"
    NOTHING_TO_COMMIT = "nothing_to_commit"
    REPLACE = "replace"
    CANCEL = "cancel"
    SEPARATE = "separate"
    ALLOW_DUPLICATE = "allow_duplicate"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True, slots=True, kw_only=True)
class ResolutionPlan:
    """Final decision for one commit attempt.

    ``removed_from_existing`` lists serials whose other-institution claims are
    evicted before the new claim is written. ``removed_from_new`` lists serials
    withdrawn from the new claim.
    """

    strategy: Strategy
    scenario: Scenario
    removed_from_existing: frozenset[EquipmentSerial] = frozenset()
    removed_from_new: frozenset[EquipmentSerial] = frozenset()
    reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self.strategy is Strategy.CANCEL

    @classmethod
    def cancelled(cls, scenario: Scenario, *, reason: str | None = None) -> ResolutionPlan:
        return cls(strategy=Strategy.CANCEL, scenario=scenario, reason=reason)

"""Strategy resolution for a commit attempt.

Responsibilities of this stage:
- keep the operator's per-device overrides for one conflict report
- evaluate the ordered resolution rules against the still-active serial sets
- return a ``ResolutionPlan`` without touching persistence

Rules run in order and the first one that returns a plan wins:

1. ``no_conflict``        nothing claimed elsewhere and something left to add -> add
2. ``nothing_to_commit``  both sides emptied by overrides -> cancel
3. ``replace``            every existing claim evicted -> replace
4. ``cancel``             every new claim withdrawn -> cancel
5. ``separate``           the two sides no longer overlap -> add
6. ``allow_duplicate``    overlap kept on purpose -> add
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from aedmatch.domain.errors import BasketValidationError, StrategyAmbiguous
from aedmatch.domain.model import MatchClassification

from .plan import ResolutionPlan, Scenario, Strategy

if TYPE_CHECKING:
    from aedmatch.domain.model import EquipmentSerial, TargetKey

    from .conflicts import ConflictReport

log = getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class ResolutionState:
    """Snapshot of both sides of a conflict after operator overrides."""

    report: ConflictReport
    active_existing: frozenset[EquipmentSerial]
    active_new: frozenset[EquipmentSerial]
    removed_from_existing: frozenset[EquipmentSerial] = frozenset()
    removed_from_new: frozenset[EquipmentSerial] = frozenset()


type StrategyRule = Callable[[ResolutionState], ResolutionPlan | None]


def no_conflict_rule(state: ResolutionState) -> ResolutionPlan | None:
    if state.report.has_conflicts or not state.active_new:
        return None
    return ResolutionPlan(
        strategy=Strategy.ADD,
        scenario=Scenario.NO_CONFLICT,
        removed_from_new=state.removed_from_new,
        reason="no_conflicts",
    )


def nothing_to_commit_rule(state: ResolutionState) -> ResolutionPlan | None:
    if state.active_existing or state.active_new:
        return None
    return ResolutionPlan.cancelled(Scenario.NOTHING_TO_COMMIT, reason="both_sides_empty")


def replace_rule(state: ResolutionState) -> ResolutionPlan | None:
    if state.active_existing:
        return None
    evicted = state.removed_from_existing | frozenset(
        state.report.serials(MatchClassification.MATCHED_TO_OTHER)
    )
    return ResolutionPlan(
        strategy=Strategy.REPLACE,
        scenario=Scenario.REPLACE,
        removed_from_existing=evicted,
        removed_from_new=state.removed_from_new,
        reason="existing_claims_evicted",
    )


def cancel_rule(state: ResolutionState) -> ResolutionPlan | None:
    if state.active_new:
        return None
    return ResolutionPlan.cancelled(Scenario.CANCEL, reason="new_claim_withdrawn")


def separate_rule(state: ResolutionState) -> ResolutionPlan | None:
    if state.active_existing & state.active_new:
        return None
    return ResolutionPlan(
        strategy=Strategy.ADD,
        scenario=Scenario.SEPARATE,
        removed_from_existing=state.removed_from_existing,
        removed_from_new=state.removed_from_new,
        reason="disjoint_claims",
    )


def allow_duplicate_rule(state: ResolutionState) -> ResolutionPlan | None:
    return ResolutionPlan(
        strategy=Strategy.ADD,
        scenario=Scenario.ALLOW_DUPLICATE,
        removed_from_existing=state.removed_from_existing,
        removed_from_new=state.removed_from_new,
        reason="duplicate_claims_allowed",
    )


DEFAULT_RULES: tuple[StrategyRule, ...] = (
    no_conflict_rule,
    nothing_to_commit_rule,
    replace_rule,
    cancel_rule,
    separate_rule,
    allow_duplicate_rule,
)


def resolve_strategy(
    state: ResolutionState,
    *,
    rules: tuple[StrategyRule, ...] = DEFAULT_RULES,
) -> ResolutionPlan:
    """Return the plan of the first matching rule."""

    for rule in rules:
        plan = rule(state)
        if plan is not None:
            log.debug(
                "Resolved %s as %s (%s)",
                state.report.target_key,
                plan.strategy,
                plan.scenario,
            )
            return plan

    fallback = ResolutionPlan.cancelled(Scenario.UNRESOLVED, reason="no_rule_matched")
    log.error("No resolution rule matched for %s; cancelling", state.report.target_key)
    raise StrategyAmbiguous(
        f"No resolution rule matched for {state.report.target_key}",
        fallback=fallback,
    )


@dataclass(slots=True)
class ConflictReview:
    """Operator overrides for one conflict report.

    ``new_serials`` is the claim the basket would make; it defaults to every
    serial in the report. The existing side is every serial another
    institution claims.
    """

    report: ConflictReport
    new_serials: tuple[EquipmentSerial, ...] = ()
    rules: tuple[StrategyRule, ...] = DEFAULT_RULES
    _removed_from_existing: set[EquipmentSerial] = field(
        default_factory=set["EquipmentSerial"], init=False
    )
    _removed_from_new: set[EquipmentSerial] = field(
        default_factory=set["EquipmentSerial"], init=False
    )

    def __post_init__(self) -> None:
        if not self.new_serials:
            self.new_serials = tuple(self.report.classifications)

    @property
    def has_conflicts(self) -> bool:
        return self.report.has_conflicts

    @property
    def existing_serials(self) -> tuple[EquipmentSerial, ...]:
        return self.report.serials(MatchClassification.MATCHED_TO_OTHER)

    @property
    def active_existing(self) -> frozenset[EquipmentSerial]:
        return frozenset(self.existing_serials) - self._removed_from_existing

    @property
    def active_new(self) -> frozenset[EquipmentSerial]:
        return frozenset(self.new_serials) - self._removed_from_new

    @property
    def removed_from_existing(self) -> frozenset[EquipmentSerial]:
        return frozenset(self._removed_from_existing)

    @property
    def removed_from_new(self) -> frozenset[EquipmentSerial]:
        return frozenset(self._removed_from_new)

    @property
    def existing_blocks(self) -> dict[TargetKey, tuple[EquipmentSerial, ...]]:
        """Active existing serials grouped by the institution that claims them."""

        blocks: dict[TargetKey, list[EquipmentSerial]] = {}
        active = self.active_existing
        for conflict in self.report.conflicts:
            if conflict.equipment_serial not in active:
                continue
            for key in conflict.other_target_keys:
                blocks.setdefault(key, []).append(conflict.equipment_serial)
        return {key: tuple(serials) for key, serials in blocks.items()}

    def remove_from_existing(self, serial: EquipmentSerial) -> None:
        """Evict ``serial`` from the other institution's claim at commit time."""

        if serial not in self.existing_serials:
            raise BasketValidationError(f"Serial {serial} is not claimed by another institution")
        self._removed_from_existing.add(serial)

    def restore_existing(self, serial: EquipmentSerial) -> None:
        self._removed_from_existing.discard(serial)

    def remove_institution_from_existing(self, target_key: TargetKey) -> tuple[EquipmentSerial, ...]:
        """Evict every conflicting serial that ``target_key`` claims."""

        serials = tuple(
            conflict.equipment_serial
            for conflict in self.report.conflicts
            if target_key in conflict.other_target_keys
        )
        if not serials:
            raise BasketValidationError(f"Institution {target_key} has no conflicting claims")
        for serial in serials:
            self.remove_from_existing(serial)
        return serials

    def remove_from_new(self, serial: EquipmentSerial) -> None:
        """Withdraw ``serial`` from the claim being committed."""

        if serial not in self.new_serials:
            raise BasketValidationError(f"Serial {serial} is not part of the new claim")
        self._removed_from_new.add(serial)

    def add_back_to_new(self, serial: EquipmentSerial) -> None:
        if serial not in self.new_serials:
            raise BasketValidationError(f"Serial {serial} is not part of the new claim")
        self._removed_from_new.discard(serial)

    def state(self) -> ResolutionState:
        return ResolutionState(
            report=self.report,
            active_existing=self.active_existing,
            active_new=self.active_new,
            removed_from_existing=self.removed_from_existing,
            removed_from_new=self.removed_from_new,
        )

    def finalize(self) -> ResolutionPlan:
        return resolve_strategy(self.state(), rules=self.rules)

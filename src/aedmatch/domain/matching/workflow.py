"""Operator-facing matching session for one institution at a time.

The workflow owns the basket store and wires it to the candidate source, the
conflict checker and the match committer. Commit is a two-step exchange:
``begin_commit`` returns a ``ConflictReview`` that the caller may adjust, and
``commit`` finalizes that review into a plan and applies it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from aedmatch.domain.errors import BasketValidationError, CommitFailure, ConflictCheckFailure
from aedmatch.domain.ports.committing import CommitRequest, UnmatchRequest

from .basket_store import BasketStore
from .resolve import ConflictReview

if TYPE_CHECKING:
    from aedmatch.domain.model import (
        BasketItem,
        EquipmentGroup,
        EquipmentSerial,
        Institution,
        ManagementNumber,
        TargetKey,
        Year,
    )
    from aedmatch.domain.ports.committing import CommitResult, MatchCommitter, UnmatchResult
    from aedmatch.domain.ports.fetching import (
        CandidateFetchResult,
        CandidateSource,
        ConflictChecker,
    )

    from .basket_store import BasketListener
    from .plan import ResolutionPlan

DEFAULT_YEAR = 2025
DEFAULT_LOW_CONFIDENCE_THRESHOLD = 90.0

log = getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class CommitOutcome:
    """What happened to one commit attempt."""

    target_key: TargetKey
    plan: ResolutionPlan
    result: CommitResult | None = None

    @property
    def committed(self) -> bool:
        return self.result is not None


type CommitListener = Callable[[CommitOutcome], None]


class MatchingWorkflow:
    """Select an institution, fill its basket, check conflicts and commit."""

    def __init__(
        self,
        *,
        candidate_source: CandidateSource,
        conflict_checker: ConflictChecker,
        committer: MatchCommitter,
        basket: BasketStore | None = None,
        year: Year = DEFAULT_YEAR,
        low_confidence_threshold: float = DEFAULT_LOW_CONFIDENCE_THRESHOLD,
        conflict_check_timeout: float | None = None,
        operator: str | None = None,
    ) -> None:
        self._candidate_source = candidate_source
        self._conflict_checker = conflict_checker
        self._committer = committer
        self.basket = basket or BasketStore()
        self.year = year
        self.low_confidence_threshold = low_confidence_threshold
        self.conflict_check_timeout = conflict_check_timeout
        self.operator = operator
        self._institution: Institution | None = None
        self._commit_listeners: list[CommitListener] = []

    # Session -------------------------------------------------------------------

    @property
    def institution(self) -> Institution | None:
        return self._institution

    def select_institution(self, institution: Institution) -> None:
        """Switch the session to ``institution``, dropping the previous basket."""

        previous = self._institution
        if previous is not None and previous.target_key != institution.target_key:
            self.basket.clear(previous.target_key)
        self._institution = institution
        log.info("Selected institution %s (%s)", institution.target_key, institution.name)

    def on_basket_changed(self, listener: BasketListener) -> Callable[[], None]:
        return self.basket.subscribe(listener)

    def on_commit_completed(self, listener: CommitListener) -> Callable[[], None]:
        self._commit_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._commit_listeners:
                self._commit_listeners.remove(listener)

        return unsubscribe

    # Candidates ----------------------------------------------------------------

    def load_candidates(
        self,
        *,
        search: str | None = None,
        include_all_region: bool = False,
        include_matched: bool = False,
    ) -> CandidateFetchResult:
        target_key = self._require_institution()
        result = self._candidate_source(
            target_key,
            year=self.year,
            include_all_region=include_all_region,
            include_matched=include_matched,
            search=search,
        )
        log.debug(
            "Loaded candidates for %s: auto=%s, search=%s",
            target_key,
            len(result.auto_suggestions),
            len(result.search_results),
        )
        return result

    # Basket --------------------------------------------------------------------

    def items(self) -> tuple[BasketItem, ...]:
        return self.basket.items(self._require_institution())

    def add_group(self, group: EquipmentGroup) -> bool:
        return self.basket.add_group(self._require_institution(), group)

    def add_serial(self, group: EquipmentGroup, serial: EquipmentSerial) -> None:
        self.basket.add_serial(self._require_institution(), group, serial)

    def remove_group(self, management_number: ManagementNumber) -> bool:
        return self.basket.remove_group(self._require_institution(), management_number)

    def remove_serial(self, management_number: ManagementNumber, serial: EquipmentSerial) -> None:
        self.basket.remove_serial(self._require_institution(), management_number, serial)

    def clear_basket(self) -> None:
        self.basket.clear(self._require_institution())

    def low_confidence_items(self) -> tuple[BasketItem, ...]:
        """Items whose suggestion confidence is at or below the warning threshold."""

        return tuple(
            item
            for item in self.items()
            if item.confidence is not None and item.confidence <= self.low_confidence_threshold
        )

    def shared_items(self) -> dict[ManagementNumber, tuple[TargetKey, ...]]:
        """Items of the current basket that other baskets also hold."""

        target_key = self._require_institution()
        shared: dict[ManagementNumber, tuple[TargetKey, ...]] = {}
        for item in self.basket.items(target_key):
            others = self.basket.baskets_containing(item.management_number, exclude=target_key)
            if others:
                shared[item.management_number] = others
        return shared

    # Commit --------------------------------------------------------------------

    def begin_commit(self) -> ConflictReview:
        """Check the basket against persisted matches; the basket is left untouched."""

        target_key = self._require_institution()
        items = self.basket.items(target_key)
        if not items:
            raise BasketValidationError(f"Basket of {target_key} is empty")

        try:
            report = self._conflict_checker(
                target_key,
                items,
                year=self.year,
                timeout=self.conflict_check_timeout,
            )
        except ConflictCheckFailure:
            log.warning("Conflict check failed for %s", target_key)
            raise
        except Exception as exc:
            log.warning("Conflict check failed for %s: %s", target_key, exc)
            raise ConflictCheckFailure(
                f"Conflict check failed: {exc}", target_key=target_key
            ) from exc

        return ConflictReview(report=report, new_serials=self.basket.selected_serials(target_key))

    def commit(self, review: ConflictReview) -> CommitOutcome:
        """Finalize ``review`` and apply it; the basket is cleared only on success."""

        target_key = review.report.target_key
        plan = review.finalize()
        if plan.is_cancelled:
            log.info("Commit for %s cancelled (%s)", target_key, plan.scenario)
            return CommitOutcome(target_key=target_key, plan=plan)

        request = self._build_request(target_key, plan)
        try:
            result = self._committer.commit(request)
        except CommitFailure:
            log.warning("Commit for %s failed; basket kept", target_key)
            raise
        except Exception as exc:
            log.warning("Commit for %s failed: %s; basket kept", target_key, exc)
            raise CommitFailure(f"Commit failed: {exc}", retryable=True) from exc

        outcome = CommitOutcome(target_key=target_key, plan=plan, result=result)
        log.info(
            "Committed %s for %s: %s groups, %s devices",
            plan.strategy,
            target_key,
            result.matched_management_numbers,
            result.matched_equipment,
        )
        self.basket.clear(target_key)
        for listener in tuple(self._commit_listeners):
            listener(outcome)
        return outcome

    def unmatch(self, *, reason: str | None = None) -> UnmatchResult:
        """Remove every persisted match of the selected institution."""

        target_key = self._require_institution()
        return self._committer.unmatch(
            UnmatchRequest(
                target_key=target_key,
                year=self.year,
                reason=reason,
                operator=self.operator,
            )
        )

    def _build_request(self, target_key: TargetKey, plan: ResolutionPlan) -> CommitRequest:
        items = self.basket.items(target_key)
        removed = plan.removed_from_new
        claimed = tuple(
            item
            for item in items
            if any(serial not in removed for serial in item.effective_serials)
        )
        if not claimed:
            raise BasketValidationError(f"Nothing left to commit for {target_key}")

        narrowed = bool(removed) or any(item.is_partial for item in claimed)
        serials: tuple[EquipmentSerial, ...] | None = None
        if narrowed:
            serials = tuple(
                serial
                for item in claimed
                for serial in item.effective_serials
                if serial not in removed
            )

        return CommitRequest(
            target_key=target_key,
            year=self.year,
            management_numbers=tuple(item.management_number for item in claimed),
            strategy=plan.strategy,
            equipment_serials=serials,
            removed_from_existing=plan.removed_from_existing,
            removed_from_new=removed,
            operator=self.operator,
        )

    def _require_institution(self) -> TargetKey:
        if self._institution is None:
            raise BasketValidationError("No institution selected")
        return self._institution.target_key

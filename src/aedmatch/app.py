"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from aedmatch.adapters.sqlalchemy.sources import (
    SqlAlchemyCandidateSource,
    SqlAlchemyExistingMatchQuery,
)
from aedmatch.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyMatchingUnitOfWork,
    is_started,
    startup,
)
from aedmatch.config.matching import MatchingConfig, get_matching_config
from aedmatch.domain.errors import BasketValidationError
from aedmatch.domain.match_commit import MatchBasketService
from aedmatch.domain.matching.conflicts import ExistingMatchConflictChecker
from aedmatch.domain.matching.workflow import MatchingWorkflow
from aedmatch.domain.matching_status import MatchingStatus, matching_status
from aedmatch.domain.model import Institution
from aedmatch.domain.ports.unit_of_work import MatchingUnitOfWork

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from aedmatch.domain.matching.conflicts import ConflictReport
    from aedmatch.domain.matching.resolve import ConflictReview
    from aedmatch.domain.matching.workflow import CommitOutcome
    from aedmatch.domain.model import EquipmentGroup, EquipmentSerial, ManagementNumber, TargetKey
    from aedmatch.domain.ports.committing import MatchCommitter, UnmatchResult
    from aedmatch.domain.ports.fetching import (
        CandidateFetchResult,
        CandidateSource,
        ConflictChecker,
    )

UnitOfWorkFactory = Callable[[], MatchingUnitOfWork]


log = getLogger(__name__)


class Backend(StrEnum):
    LOCAL = "local"
    DASHBOARD = "dashboard"


class ConflictPolicy(StrEnum):
    """Operator decision applied to every conflict of a non-interactive commit."""

    ABORT = "abort"
    REPLACE = "replace"
    KEEP_BOTH = "keep-both"
    SKIP_CONFLICTING = "skip-conflicting"


@dataclass(slots=True)
class Collaborators:
    candidate_source: CandidateSource
    conflict_checker: ConflictChecker
    committer: MatchCommitter


@dataclass(slots=True, kw_only=True)
class Overrides:
    """Per-serial decisions applied on top of a ``ConflictPolicy``."""

    evict: tuple[EquipmentSerial, ...] = ()
    evict_institutions: tuple[TargetKey, ...] = ()
    withdraw: tuple[EquipmentSerial, ...] = ()


def build_collaborators(
    backend: Backend = Backend.LOCAL,
    *,
    config: MatchingConfig | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Collaborators:
    if backend is Backend.DASHBOARD:
        # deferred so the local backend does not need dashboard credentials
        from aedmatch.adapters.dashboard import (  # noqa: PLC0415
            DashboardCandidateSource,
            DashboardConflictChecker,
            DashboardMatchCommitter,
        )

        return Collaborators(
            candidate_source=DashboardCandidateSource(),
            conflict_checker=DashboardConflictChecker(),
            committer=DashboardMatchCommitter(),
        )

    effective_uow = _local_unit_of_work(unit_of_work_factory)
    limit = (config or get_matching_config()).candidate_limit
    return Collaborators(
        candidate_source=SqlAlchemyCandidateSource(
            unit_of_work_factory=effective_uow, limit=limit
        ),
        conflict_checker=ExistingMatchConflictChecker(
            SqlAlchemyExistingMatchQuery(unit_of_work_factory=effective_uow)
        ),
        committer=MatchBasketService(unit_of_work_factory=effective_uow),
    )


def build_workflow(
    *,
    backend: Backend = Backend.LOCAL,
    collaborators: Collaborators | None = None,
    config: MatchingConfig | None = None,
    operator: str | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> MatchingWorkflow:
    matching = config or get_matching_config()
    wired = collaborators or build_collaborators(
        backend, config=matching, unit_of_work_factory=unit_of_work_factory
    )
    return MatchingWorkflow(
        candidate_source=wired.candidate_source,
        conflict_checker=wired.conflict_checker,
        committer=wired.committer,
        year=matching.year,
        low_confidence_threshold=matching.low_confidence_threshold,
        conflict_check_timeout=matching.conflict_check_timeout_seconds,
        operator=operator,
    )


def resolve_institution(
    target_key: TargetKey,
    *,
    backend: Backend = Backend.LOCAL,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Institution:
    """Look the institution up locally; the dashboard backend only knows its key."""

    if backend is Backend.DASHBOARD:
        return Institution(target_key=target_key, name=target_key)
    with _local_unit_of_work(unit_of_work_factory)() as uow:
        institution = uow.repositories.institutions.get(target_key)
    if institution is None:
        raise BasketValidationError(f"Institution {target_key} not found")
    return institution


def fetch_candidates(
    workflow: MatchingWorkflow,
    institution: Institution,
    *,
    search: str | None = None,
    include_all_region: bool = False,
    include_matched: bool = False,
) -> CandidateFetchResult:
    workflow.select_institution(institution)
    return workflow.load_candidates(
        search=search,
        include_all_region=include_all_region,
        include_matched=include_matched,
    )


def fill_basket(
    workflow: MatchingWorkflow,
    institution: Institution,
    management_numbers: Sequence[ManagementNumber],
    *,
    serials: Iterable[EquipmentSerial] = (),
) -> tuple[EquipmentGroup, ...]:
    """Put the named groups in the institution's basket.

    Groups that own one of ``serials`` are claimed partially, the rest in full.
    """

    workflow.select_institution(institution)
    groups = _find_groups(workflow, management_numbers)
    wanted = set(serials)
    claimed: set[EquipmentSerial] = set()
    for group in groups:
        chosen = [serial for serial in group.equipment_serials if serial in wanted]
        if not chosen:
            workflow.add_group(group)
            continue
        for serial in chosen:
            workflow.add_serial(group, serial)
        claimed.update(chosen)
    unknown = wanted - claimed
    if unknown:
        raise BasketValidationError(
            f"Serials {sorted(unknown)} do not belong to the requested management numbers"
        )
    for item in workflow.low_confidence_items():
        log.warning(
            "Low confidence suggestion %s (%.0f) for %s",
            item.management_number,
            item.confidence,
            institution.target_key,
        )
    for management_number, others in workflow.shared_items().items():
        log.warning(
            "%s is also in the basket of %s", management_number, ", ".join(others)
        )
    return groups


def check_basket(
    workflow: MatchingWorkflow,
    institution: Institution,
    management_numbers: Sequence[ManagementNumber],
    *,
    serials: Iterable[EquipmentSerial] = (),
) -> ConflictReport:
    fill_basket(workflow, institution, management_numbers, serials=serials)
    return workflow.begin_commit().report


def match_basket(
    workflow: MatchingWorkflow,
    institution: Institution,
    management_numbers: Sequence[ManagementNumber],
    *,
    serials: Iterable[EquipmentSerial] = (),
    policy: ConflictPolicy = ConflictPolicy.ABORT,
    overrides: Overrides | None = None,
) -> CommitOutcome:
    """Fill the basket, review conflicts under ``policy`` and commit."""

    fill_basket(workflow, institution, management_numbers, serials=serials)
    review = workflow.begin_commit()
    apply_policy(review, policy, overrides or Overrides())
    outcome = workflow.commit(review)
    if outcome.committed:
        log.info(
            "Matched %s to %s (%s)",
            ", ".join(management_numbers),
            institution.target_key,
            outcome.plan.scenario,
        )
    else:
        log.warning(
            "Nothing committed for %s (%s)", institution.target_key, outcome.plan.reason
        )
    return outcome


def apply_policy(review: ConflictReview, policy: ConflictPolicy, overrides: Overrides) -> None:
    for target_key in overrides.evict_institutions:
        review.remove_institution_from_existing(target_key)
    for serial in overrides.evict:
        review.remove_from_existing(serial)
    for serial in overrides.withdraw:
        review.remove_from_new(serial)

    if not review.has_conflicts:
        return
    match policy:
        case ConflictPolicy.ABORT:
            for conflict in review.report.conflicts:
                log.warning(
                    "%s (%s) is matched to %s",
                    conflict.equipment_serial,
                    conflict.management_number,
                    ", ".join(conflict.other_target_keys),
                )
            if not (overrides.evict or overrides.evict_institutions or overrides.withdraw):
                for serial in review.new_serials:
                    review.remove_from_new(serial)
        case ConflictPolicy.REPLACE:
            for serial in review.existing_serials:
                review.remove_from_existing(serial)
        case ConflictPolicy.SKIP_CONFLICTING:
            for serial in review.existing_serials:
                if serial in review.new_serials:
                    review.remove_from_new(serial)
        case ConflictPolicy.KEEP_BOTH:
            pass


def unmatch_institution(
    workflow: MatchingWorkflow,
    institution: Institution,
    *,
    reason: str | None = None,
) -> UnmatchResult:
    workflow.select_institution(institution)
    result = workflow.unmatch(reason=reason)
    log.info(
        "Unmatched %s: groups=%s, devices=%s",
        institution.target_key,
        result.unmatched_count,
        result.equipment_count,
    )
    return result


def get_matching_status(
    *,
    year: int | None = None,
    sido: str | None = None,
    gugun: str | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> MatchingStatus:
    effective_year = year if year is not None else get_matching_config().year
    return matching_status(
        unit_of_work_factory=_local_unit_of_work(unit_of_work_factory),
        year=effective_year,
        sido=sido,
        gugun=gugun,
    )


def _find_groups(
    workflow: MatchingWorkflow, management_numbers: Sequence[ManagementNumber]
) -> tuple[EquipmentGroup, ...]:
    found: dict[ManagementNumber, EquipmentGroup] = {}
    for management_number in dict.fromkeys(management_numbers):
        result = workflow.load_candidates(
            search=management_number, include_all_region=True, include_matched=True
        )
        for group in result.all_groups:
            if group.management_number == management_number:
                found[management_number] = group
                break
    missing = [number for number in management_numbers if number not in found]
    if missing:
        raise BasketValidationError(f"Unknown management numbers: {', '.join(missing)}")
    return tuple(found[number] for number in dict.fromkeys(management_numbers))


def _local_unit_of_work(factory: UnitOfWorkFactory | None) -> UnitOfWorkFactory:
    if factory is not None:
        return factory
    if not is_started():
        startup()
    return SqlAlchemyMatchingUnitOfWork

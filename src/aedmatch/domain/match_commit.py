"""Application service applying resolved basket commits to local storage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from aedmatch.domain.errors import CommitFailure
from aedmatch.domain.matching.plan import Strategy
from aedmatch.domain.model import MatchAction, MatchingMethod, MatchLogEntry
from aedmatch.domain.ports.committing import CommitResult, UnmatchResult

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from aedmatch.domain.model import Device, EquipmentSerial
    from aedmatch.domain.ports.committing import CommitRequest, UnmatchRequest
    from aedmatch.domain.ports.unit_of_work import MatchingUnitOfWork

REPLACE_REASON = "replace"
BATCH_REASON = "batch"

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class MatchBasketService:
    """Match committer writing through a unit of work.

    Each request runs in one transaction. Serials already matched to the target
    are skipped, so replaying a request never double-claims.
    """

    unit_of_work_factory: Callable[[], MatchingUnitOfWork]
    clock: Callable[[], datetime] = field(default=_utcnow)
    matching_method: MatchingMethod = MatchingMethod.MANUAL

    def commit(self, request: CommitRequest) -> CommitResult:
        if request.strategy is Strategy.CANCEL:
            raise CommitFailure("Cancelled plans are never committed")
        if not request.management_numbers:
            raise CommitFailure("Commit request names no management numbers")

        with self.unit_of_work_factory() as uow:
            repos = uow.repositories
            if repos.institutions.get(request.target_key) is None:
                raise CommitFailure(
                    f"Institution {request.target_key} not found", status_code=404
                )

            devices = repos.devices.for_management_numbers(request.management_numbers)
            serials = _claimed_serials(request, devices)
            if not serials:
                raise CommitFailure(f"Nothing left to commit for {request.target_key}")

            to_evict = set(request.removed_from_existing)
            if request.strategy is Strategy.REPLACE:
                to_evict.update(serials)
            evicted = 0
            if to_evict:
                evicted = repos.matches.delete_other_claims(
                    sorted(to_evict),
                    keep_target_key=request.target_key,
                    year=request.year,
                )

            already = {
                match.equipment_serial
                for match in repos.matches.for_serials(serials, year=request.year)
                if match.target_key == request.target_key
            }
            now = self.clock()
            newly = 0
            for serial in serials:
                if serial in already:
                    continue
                repos.matches.add(
                    equipment_serial=serial,
                    target_key=request.target_key,
                    year=request.year,
                    matched_at=now,
                    matched_by=request.operator,
                    matching_method=self.matching_method,
                )
                newly += 1

            claimed = set(serials)
            management_numbers = tuple(
                dict.fromkeys(
                    device.management_number
                    for device in devices
                    if device.equipment_serial in claimed
                )
            )
            repos.match_logs.add(
                MatchLogEntry(
                    action=MatchAction.MATCH,
                    year=request.year,
                    target_key=request.target_key,
                    management_numbers=management_numbers,
                    reason=REPLACE_REASON if request.strategy is Strategy.REPLACE else BATCH_REASON,
                    user_id=request.operator,
                    created_at=now,
                )
            )
            uow.commit()

        log.info(
            "Matched %s devices (%s new, %s evicted) to %s via %s",
            len(serials),
            newly,
            evicted,
            request.target_key,
            request.strategy,
        )
        return CommitResult(
            matched_management_numbers=len(management_numbers),
            matched_equipment=len(serials),
            newly_matched=newly,
            already_matched=len(serials) - newly,
            evicted=evicted,
        )

    def unmatch(self, request: UnmatchRequest) -> UnmatchResult:
        with self.unit_of_work_factory() as uow:
            repos = uow.repositories
            if repos.institutions.get(request.target_key) is None:
                raise CommitFailure(
                    f"Institution {request.target_key} not found", status_code=404
                )
            current = repos.matches.for_target(request.target_key, year=request.year)
            if not current:
                raise CommitFailure(
                    f"Institution {request.target_key} has no matches in {request.year}",
                    status_code=404,
                )
            management_numbers = tuple(dict.fromkeys(m.management_number for m in current))
            removed = repos.matches.delete_for_target(request.target_key, year=request.year)
            repos.match_logs.add(
                MatchLogEntry(
                    action=MatchAction.UNMATCH,
                    year=request.year,
                    target_key=request.target_key,
                    management_numbers=management_numbers,
                    reason=request.reason,
                    user_id=request.operator,
                    created_at=self.clock(),
                )
            )
            uow.commit()

        log.info("Unmatched %s devices from %s", removed, request.target_key)
        return UnmatchResult(
            unmatched_count=len(management_numbers),
            equipment_count=removed,
        )


def _claimed_serials(
    request: CommitRequest, devices: Sequence[Device]
) -> tuple[EquipmentSerial, ...]:
    """Serials of ``devices`` the request claims, in registry order."""

    registered = tuple(dict.fromkeys(device.equipment_serial for device in devices))
    if not registered:
        raise CommitFailure(
            f"No devices registered for {', '.join(request.management_numbers)}"
        )
    if request.equipment_serials is not None:
        unknown = set(request.equipment_serials) - set(registered)
        if unknown:
            raise CommitFailure(
                f"Serials {sorted(unknown)} do not belong to the requested management numbers"
            )
        wanted = set(request.equipment_serials)
        registered = tuple(serial for serial in registered if serial in wanted)
    return tuple(serial for serial in registered if serial not in request.removed_from_new)

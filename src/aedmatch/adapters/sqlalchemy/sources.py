"""Read-side ports served straight from the local matching store."""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy.exc import DBAPIError

from aedmatch.adapters.sqlalchemy.unit_of_work import SqlAlchemyMatchingUnitOfWork
from aedmatch.domain.errors import BasketValidationError
from aedmatch.domain.model import EquipmentGroup
from aedmatch.domain.ports.fetching import CandidateFetchResult

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from aedmatch.domain.model import (
        Device,
        EquipmentSerial,
        ExistingMatch,
        Institution,
        TargetKey,
        Year,
    )
    from aedmatch.domain.ports.unit_of_work import MatchingUnitOfWork

DEFAULT_CANDIDATE_LIMIT = 200
# SQLSTATE query_canceled, raised when statement_timeout fires
_QUERY_CANCELED = "57014"

log = getLogger(__name__)


@dataclass(slots=True)
class SqlAlchemyCandidateSource:
    """List registry groups around an institution.

    ``auto_suggestions`` are the groups registered under the institution's exact
    name (or carrying its unique key in their location text); no confidence is
    assigned. ``search_results`` are every other group in scope.
    """

    unit_of_work_factory: Callable[[], MatchingUnitOfWork] = SqlAlchemyMatchingUnitOfWork
    limit: int = DEFAULT_CANDIDATE_LIMIT

    def __call__(
        self,
        target_key: TargetKey,
        *,
        year: Year,
        include_all_region: bool = False,
        include_matched: bool = False,
        search: str | None = None,
    ) -> CandidateFetchResult:
        with self.unit_of_work_factory() as uow:
            repos = uow.repositories
            institution = repos.institutions.get(target_key)
            if institution is None:
                raise BasketValidationError(f"Institution {target_key} not found")
            devices = repos.devices.in_region(
                sido=None if include_all_region else institution.sido,
                gugun=None if include_all_region else institution.gugun,
                search=search,
                limit=self.limit,
            )
            matched = {
                match.equipment_serial
                for match in repos.matches.for_serials(
                    [device.equipment_serial for device in devices], year=year
                )
            }

        result = CandidateFetchResult()
        for group in _group_devices(devices, matched):
            if group.is_matched and not include_matched:
                continue
            if _is_suggested(institution, group):
                result.auto_suggestions.append(group)
            else:
                result.search_results.append(group)
        log.debug(
            "Candidates for %s: %s suggested, %s listed",
            target_key,
            len(result.auto_suggestions),
            len(result.search_results),
        )
        return result


@dataclass(slots=True)
class SqlAlchemyExistingMatchQuery:
    """Existing-match lookup against the local store.

    ``timeout`` is handed to the repository as a server-side statement limit and
    checked against the elapsed time afterwards; either way an overrun surfaces
    as ``TimeoutError`` so the conflict check reports it as timed out.
    """

    unit_of_work_factory: Callable[[], MatchingUnitOfWork] = SqlAlchemyMatchingUnitOfWork
    clock: Callable[[], float] = time.monotonic

    def __call__(
        self,
        serials: Sequence[EquipmentSerial],
        *,
        year: Year,
        timeout: float | None = None,
    ) -> list[ExistingMatch]:
        started = self.clock()
        try:
            with self.unit_of_work_factory() as uow:
                rows = list(
                    uow.repositories.matches.for_serials(serials, year=year, timeout=timeout)
                )
        except DBAPIError as exc:
            if _sqlstate(exc) == _QUERY_CANCELED:
                raise TimeoutError(f"Existing match lookup exceeded {timeout}s") from exc
            raise
        elapsed = self.clock() - started
        if timeout is not None and elapsed > timeout:
            log.warning("Existing match lookup took %.2fs (limit %ss)", elapsed, timeout)
            raise TimeoutError(f"Existing match lookup exceeded {timeout}s")
        return rows


def _sqlstate(exc: DBAPIError) -> str | None:
    return getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)


def _group_devices(
    devices: Sequence[Device], matched: set[EquipmentSerial]
) -> list[EquipmentGroup]:
    by_number: dict[str, list[Device]] = defaultdict(list)
    for device in devices:
        by_number[device.management_number].append(device)
    return [
        EquipmentGroup.from_devices(
            members,
            is_matched=any(member.equipment_serial in matched for member in members),
        )
        for members in by_number.values()
    ]


def _is_suggested(institution: Institution, group: EquipmentGroup) -> bool:
    if group.institution_name.strip() == institution.name.strip():
        return True
    if institution.unique_key:
        return any(
            institution.unique_key in detail for detail in group.location_details.values()
        )
    return False

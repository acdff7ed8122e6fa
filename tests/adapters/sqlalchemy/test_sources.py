from __future__ import annotations

from types import SimpleNamespace
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.exc import OperationalError

from aedmatch.adapters.sqlalchemy.sources import (
    SqlAlchemyCandidateSource,
    SqlAlchemyExistingMatchQuery,
)
from aedmatch.domain.errors import BasketValidationError, ConflictCheckFailure
from aedmatch.domain.matching import ExistingMatchConflictChecker
from aedmatch.domain.model import BasketItem
from tests.helpers.matching import YEAR, make_group, store_match

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from aedmatch.adapters.sqlalchemy.unit_of_work import SqlAlchemyMatchingUnitOfWork
    from aedmatch.domain.model import EquipmentGroup

    UowFactory = Callable[[], SqlAlchemyMatchingUnitOfWork]


def _numbers(groups: Sequence[EquipmentGroup]) -> list[str]:
    return [group.management_number for group in groups]


def test_exact_name_match_is_suggested(seeded_unit_of_work: UowFactory) -> None:
    source = SqlAlchemyCandidateSource(unit_of_work_factory=seeded_unit_of_work)

    result = source("T-SCHOOL", year=YEAR)

    assert _numbers(result.auto_suggestions) == ["MN-100"]
    assert _numbers(result.search_results) == ["MN-200"]
    group = result.auto_suggestions[0]
    assert group.equipment_serials == ("SN-1", "SN-2")
    assert group.location_details == {"SN-1": "1F lobby", "SN-2": "Gym"}
    assert group.confidence is None


def test_unique_key_in_location_is_suggested(seeded_unit_of_work: UowFactory) -> None:
    source = SqlAlchemyCandidateSource(unit_of_work_factory=seeded_unit_of_work)

    result = source("T-CLINIC", year=YEAR)

    assert _numbers(result.auto_suggestions) == ["MN-200"]


def test_all_region_widens_the_search(seeded_unit_of_work: UowFactory) -> None:
    source = SqlAlchemyCandidateSource(unit_of_work_factory=seeded_unit_of_work)

    local = source("T-SCHOOL", year=YEAR)
    everywhere = source("T-SCHOOL", year=YEAR, include_all_region=True)

    assert "MN-300" not in _numbers(local.all_groups)
    assert "MN-300" in _numbers(everywhere.search_results)


def test_matched_groups_are_hidden_unless_requested(seeded_unit_of_work: UowFactory) -> None:
    store_match(seeded_unit_of_work, "SN-2", "T-CLINIC")
    source = SqlAlchemyCandidateSource(unit_of_work_factory=seeded_unit_of_work)

    hidden = source("T-SCHOOL", year=YEAR)
    shown = source("T-SCHOOL", year=YEAR, include_matched=True)

    assert hidden.auto_suggestions == []
    assert shown.auto_suggestions[0].is_matched


def test_search_filters_candidates(seeded_unit_of_work: UowFactory) -> None:
    source = SqlAlchemyCandidateSource(unit_of_work_factory=seeded_unit_of_work)

    result = source("T-SCHOOL", year=YEAR, search="MN-200")

    assert _numbers(result.all_groups) == ["MN-200"]


def test_unknown_institution_is_rejected(seeded_unit_of_work: UowFactory) -> None:
    source = SqlAlchemyCandidateSource(unit_of_work_factory=seeded_unit_of_work)

    with pytest.raises(BasketValidationError):
        source("T-MISSING", year=YEAR)


def test_existing_match_query_reads_requested_year(seeded_unit_of_work: UowFactory) -> None:
    store_match(seeded_unit_of_work, "SN-1", "T-CLINIC")
    store_match(seeded_unit_of_work, "SN-2", "T-CLINIC", year=YEAR - 1)
    query = SqlAlchemyExistingMatchQuery(unit_of_work_factory=seeded_unit_of_work)

    rows = query(["SN-1", "SN-2"], year=YEAR, timeout=1.0)

    assert [(row.equipment_serial, row.target_key) for row in rows] == [("SN-1", "T-CLINIC")]


def _ticking_clock(*readings: float) -> Callable[[], float]:
    values = iter(readings)
    return lambda: next(values)


def test_slow_existing_match_lookup_times_out(seeded_unit_of_work: UowFactory) -> None:
    query = SqlAlchemyExistingMatchQuery(
        unit_of_work_factory=seeded_unit_of_work, clock=_ticking_clock(0.0, 3.0)
    )

    with pytest.raises(TimeoutError):
        query(["SN-1"], year=YEAR, timeout=1.0)


def test_lookup_without_timeout_ignores_elapsed_time(seeded_unit_of_work: UowFactory) -> None:
    store_match(seeded_unit_of_work, "SN-1", "T-CLINIC")
    query = SqlAlchemyExistingMatchQuery(
        unit_of_work_factory=seeded_unit_of_work, clock=_ticking_clock(0.0, 300.0)
    )

    assert len(query(["SN-1"], year=YEAR)) == 1


def test_slow_lookup_is_reported_as_timed_out_conflict_check(
    seeded_unit_of_work: UowFactory,
) -> None:
    query = SqlAlchemyExistingMatchQuery(
        unit_of_work_factory=seeded_unit_of_work, clock=_ticking_clock(0.0, 3.0)
    )
    checker = ExistingMatchConflictChecker(query)
    item = BasketItem(target_key="T-SCHOOL", group=make_group("MN-100", ("SN-1",)))

    with pytest.raises(ConflictCheckFailure) as exc_info:
        checker("T-SCHOOL", [item], year=YEAR, timeout=1.0)

    assert exc_info.value.timed_out
    assert exc_info.value.retryable


class _QueryCanceled(Exception):
    sqlstate = "57014"


class _CancelingUnitOfWork:
    def __init__(self) -> None:
        self.repositories = SimpleNamespace(matches=self)

    def __enter__(self) -> _CancelingUnitOfWork:
        return self

    def __exit__(self, *_exc: object) -> None:
        return None

    def for_serials(self, *_args: object, **_kwargs: object) -> list[object]:
        raise OperationalError("SELECT", {}, _QueryCanceled())


def test_server_statement_timeout_becomes_timeout_error() -> None:
    query = SqlAlchemyExistingMatchQuery(
        unit_of_work_factory=_CancelingUnitOfWork  # type: ignore[arg-type]
    )

    with pytest.raises(TimeoutError):
        query(["SN-1"], year=YEAR, timeout=1.0)

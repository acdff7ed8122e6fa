from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from aedmatch.domain.errors import CommitFailure
from aedmatch.domain.match_commit import BATCH_REASON, REPLACE_REASON, MatchBasketService
from aedmatch.domain.matching import Strategy
from aedmatch.domain.model import MatchAction
from aedmatch.domain.ports.committing import CommitRequest, UnmatchRequest
from tests.helpers.matching import MATCHED_AT, YEAR, store_match

if TYPE_CHECKING:
    from collections.abc import Callable

    from aedmatch.adapters.sqlalchemy.unit_of_work import SqlAlchemyMatchingUnitOfWork

    UowFactory = Callable[[], SqlAlchemyMatchingUnitOfWork]


def _service(factory: UowFactory) -> MatchBasketService:
    return MatchBasketService(unit_of_work_factory=factory, clock=lambda: MATCHED_AT)


def _claims(factory: UowFactory, *serials: str, year: int = YEAR) -> dict[str, list[str]]:
    with factory() as uow:
        rows = uow.repositories.matches.for_serials(list(serials), year=year)
    claims: dict[str, list[str]] = {serial: [] for serial in serials}
    for row in rows:
        claims[row.equipment_serial].append(row.target_key)
    return {serial: sorted(keys) for serial, keys in claims.items()}


def test_add_claims_every_device_of_the_group(seeded_unit_of_work: UowFactory) -> None:
    result = _service(seeded_unit_of_work).commit(
        CommitRequest(target_key="T-SCHOOL", year=YEAR, management_numbers=("MN-100",))
    )

    assert result.matched_management_numbers == 1
    assert result.matched_equipment == 2
    assert result.newly_matched == 2
    assert result.evicted == 0
    assert _claims(seeded_unit_of_work, "SN-1", "SN-2") == {
        "SN-1": ["T-SCHOOL"],
        "SN-2": ["T-SCHOOL"],
    }


def test_replaying_a_commit_does_not_double_claim(seeded_unit_of_work: UowFactory) -> None:
    service = _service(seeded_unit_of_work)
    request = CommitRequest(target_key="T-SCHOOL", year=YEAR, management_numbers=("MN-100",))

    service.commit(request)
    replay = service.commit(request)

    assert replay.newly_matched == 0
    assert replay.already_matched == 2
    with seeded_unit_of_work() as uow:
        assert len(uow.repositories.matches.for_target("T-SCHOOL", year=YEAR)) == 2


def test_replace_leaves_target_as_only_claimant(seeded_unit_of_work: UowFactory) -> None:
    store_match(seeded_unit_of_work, "SN-1", "T-CLINIC")
    store_match(seeded_unit_of_work, "SN-2", "T-BUSAN")

    result = _service(seeded_unit_of_work).commit(
        CommitRequest(
            target_key="T-SCHOOL",
            year=YEAR,
            management_numbers=("MN-100",),
            strategy=Strategy.REPLACE,
            removed_from_existing=frozenset({"SN-1", "SN-2"}),
        )
    )

    assert result.evicted == 2
    assert _claims(seeded_unit_of_work, "SN-1", "SN-2") == {
        "SN-1": ["T-SCHOOL"],
        "SN-2": ["T-SCHOOL"],
    }


def test_add_evicts_only_named_serials(seeded_unit_of_work: UowFactory) -> None:
    store_match(seeded_unit_of_work, "SN-1", "T-CLINIC")
    store_match(seeded_unit_of_work, "SN-2", "T-BUSAN")

    result = _service(seeded_unit_of_work).commit(
        CommitRequest(
            target_key="T-SCHOOL",
            year=YEAR,
            management_numbers=("MN-100",),
            removed_from_existing=frozenset({"SN-1"}),
        )
    )

    assert result.evicted == 1
    assert _claims(seeded_unit_of_work, "SN-1", "SN-2") == {
        "SN-1": ["T-SCHOOL"],
        "SN-2": ["T-BUSAN", "T-SCHOOL"],
    }


def test_explicit_serials_narrow_the_claim(seeded_unit_of_work: UowFactory) -> None:
    result = _service(seeded_unit_of_work).commit(
        CommitRequest(
            target_key="T-SCHOOL",
            year=YEAR,
            management_numbers=("MN-100", "MN-200"),
            equipment_serials=("SN-2", "SN-3"),
        )
    )

    assert result.matched_equipment == 2
    assert _claims(seeded_unit_of_work, "SN-1", "SN-2", "SN-3") == {
        "SN-1": [],
        "SN-2": ["T-SCHOOL"],
        "SN-3": ["T-SCHOOL"],
    }


def test_withdrawn_serials_are_never_claimed(seeded_unit_of_work: UowFactory) -> None:
    store_match(seeded_unit_of_work, "SN-1", "T-CLINIC")

    result = _service(seeded_unit_of_work).commit(
        CommitRequest(
            target_key="T-SCHOOL",
            year=YEAR,
            management_numbers=("MN-100",),
            removed_from_new=frozenset({"SN-1"}),
        )
    )

    assert result.matched_equipment == 1
    assert _claims(seeded_unit_of_work, "SN-1", "SN-2") == {
        "SN-1": ["T-CLINIC"],
        "SN-2": ["T-SCHOOL"],
    }


def test_commit_writes_match_log(seeded_unit_of_work: UowFactory) -> None:
    service = _service(seeded_unit_of_work)
    service.commit(
        CommitRequest(
            target_key="T-SCHOOL",
            year=YEAR,
            management_numbers=("MN-100",),
            operator="operator-1",
        )
    )
    service.commit(
        CommitRequest(
            target_key="T-SCHOOL",
            year=YEAR,
            management_numbers=("MN-200",),
            strategy=Strategy.REPLACE,
        )
    )

    with seeded_unit_of_work() as uow:
        entries = uow.repositories.match_logs.for_target("T-SCHOOL", year=YEAR)

    assert [entry.reason for entry in entries] == [BATCH_REASON, REPLACE_REASON]
    assert entries[0].management_numbers == ("MN-100",)
    assert entries[0].user_id == "operator-1"
    assert entries[0].created_at == MATCHED_AT


def test_years_are_independent(seeded_unit_of_work: UowFactory) -> None:
    store_match(seeded_unit_of_work, "SN-1", "T-CLINIC", year=YEAR - 1)

    result = _service(seeded_unit_of_work).commit(
        CommitRequest(
            target_key="T-SCHOOL",
            year=YEAR,
            management_numbers=("MN-100",),
            strategy=Strategy.REPLACE,
        )
    )

    assert result.evicted == 0
    assert _claims(seeded_unit_of_work, "SN-1", year=YEAR - 1) == {"SN-1": ["T-CLINIC"]}


def test_unknown_institution_is_not_found(seeded_unit_of_work: UowFactory) -> None:
    with pytest.raises(CommitFailure) as exc_info:
        _service(seeded_unit_of_work).commit(
            CommitRequest(target_key="T-MISSING", year=YEAR, management_numbers=("MN-100",))
        )

    assert exc_info.value.status_code == 404
    assert not exc_info.value.retryable


def test_cancelled_plan_is_rejected(seeded_unit_of_work: UowFactory) -> None:
    with pytest.raises(CommitFailure):
        _service(seeded_unit_of_work).commit(
            CommitRequest(
                target_key="T-SCHOOL",
                year=YEAR,
                management_numbers=("MN-100",),
                strategy=Strategy.CANCEL,
            )
        )


@pytest.mark.parametrize(
    "request_kwargs",
    [
        {"management_numbers": ("MN-999",)},
        {"management_numbers": ("MN-100",), "equipment_serials": ("SN-4",)},
        {"management_numbers": ("MN-100",), "removed_from_new": frozenset({"SN-1", "SN-2"})},
    ],
)
def test_invalid_claims_write_nothing(
    seeded_unit_of_work: UowFactory, request_kwargs: dict[str, object]
) -> None:
    request = CommitRequest(target_key="T-SCHOOL", year=YEAR, **request_kwargs)  # type: ignore[arg-type]

    with pytest.raises(CommitFailure):
        _service(seeded_unit_of_work).commit(request)

    with seeded_unit_of_work() as uow:
        assert uow.repositories.matches.for_target("T-SCHOOL", year=YEAR) == []


def test_unmatch_removes_all_matches_and_logs(seeded_unit_of_work: UowFactory) -> None:
    service = _service(seeded_unit_of_work)
    service.commit(
        CommitRequest(
            target_key="T-SCHOOL", year=YEAR, management_numbers=("MN-100", "MN-200")
        )
    )

    result = service.unmatch(
        UnmatchRequest(target_key="T-SCHOOL", year=YEAR, reason="wrong site")
    )

    assert result.unmatched_count == 2
    assert result.equipment_count == 3
    with seeded_unit_of_work() as uow:
        assert uow.repositories.matches.for_target("T-SCHOOL", year=YEAR) == []
        entries = uow.repositories.match_logs.for_target("T-SCHOOL", year=YEAR)
    assert [entry.action for entry in entries] == [MatchAction.MATCH, MatchAction.UNMATCH]
    assert entries[-1].reason == "wrong site"


def test_unmatch_without_matches_is_not_found(seeded_unit_of_work: UowFactory) -> None:
    with pytest.raises(CommitFailure) as exc_info:
        _service(seeded_unit_of_work).unmatch(UnmatchRequest(target_key="T-SCHOOL", year=YEAR))

    assert exc_info.value.status_code == 404

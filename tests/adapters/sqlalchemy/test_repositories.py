"""Tests for SQLAlchemy repositories."""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy.orm import Session  # noqa: TC002

from aedmatch.adapters.sqlalchemy.repositories import (
    SqlAlchemyDeviceRepository,
    SqlAlchemyExistingMatchRepository,
    SqlAlchemyInstitutionRepository,
    SqlAlchemyMatchLogRepository,
    statement_timeout_sql,
)
from aedmatch.domain.model import MatchAction, MatchingMethod, MatchLogEntry
from tests.helpers.matching import (
    MATCHED_AT,
    REGISTRY_DEVICES,
    REGISTRY_INSTITUTIONS,
    YEAR,
)


def _seed(session: Session) -> None:
    institutions = SqlAlchemyInstitutionRepository(session)
    devices = SqlAlchemyDeviceRepository(session)
    for institution in REGISTRY_INSTITUTIONS:
        institutions.add(institution)
    for device in REGISTRY_DEVICES:
        devices.add(device)
    session.commit()


def _match(session: Session, serial: str, target_key: str, *, year: int = YEAR) -> None:
    SqlAlchemyExistingMatchRepository(session).add(
        equipment_serial=serial,
        target_key=target_key,
        year=year,
        matched_at=MATCHED_AT,
        matching_method=MatchingMethod.MANUAL,
    )


def test_institution_repository_round_trips_and_filters(sqlite_session: Session) -> None:
    _seed(sqlite_session)
    repository = SqlAlchemyInstitutionRepository(sqlite_session)

    clinic = repository.get("T-CLINIC")

    assert clinic is not None
    assert clinic.unique_key == "CLINIC-7"
    assert repository.get("T-MISSING") is None
    assert [item.target_key for item in repository.find(sido="Busan")] == ["T-BUSAN"]
    assert len(repository.find()) == 3


def test_device_repository_groups_by_management_number(sqlite_session: Session) -> None:
    _seed(sqlite_session)
    repository = SqlAlchemyDeviceRepository(sqlite_session)

    devices = repository.for_management_numbers(["MN-100", "MN-300"])

    assert [device.equipment_serial for device in devices] == ["SN-1", "SN-2", "SN-4", "SN-5"]
    assert repository.for_management_numbers([]) == []


def test_device_repository_region_search(sqlite_session: Session) -> None:
    _seed(sqlite_session)
    repository = SqlAlchemyDeviceRepository(sqlite_session)

    seoul = repository.in_region(sido="Seoul", gugun="Mapo")
    searched = repository.in_region(search="health")
    everywhere = repository.in_region()

    assert {device.management_number for device in seoul} == {"MN-100", "MN-200"}
    assert [device.equipment_serial for device in searched] == ["SN-3"]
    assert len(everywhere) == 5


def test_device_repository_limit_counts_groups_not_devices(sqlite_session: Session) -> None:
    _seed(sqlite_session)

    devices = SqlAlchemyDeviceRepository(sqlite_session).in_region(limit=1)

    assert [device.equipment_serial for device in devices] == ["SN-1", "SN-2"]


def test_existing_match_repository_joins_registry_details(sqlite_session: Session) -> None:
    _seed(sqlite_session)
    _match(sqlite_session, "SN-1", "T-CLINIC")
    _match(sqlite_session, "SN-1", "T-SCHOOL", year=YEAR - 1)
    sqlite_session.commit()
    repository = SqlAlchemyExistingMatchRepository(sqlite_session)

    rows = repository.for_serials(["SN-1", "SN-2"], year=YEAR)

    assert len(rows) == 1
    assert rows[0].target_key == "T-CLINIC"
    assert rows[0].management_number == "MN-100"
    assert rows[0].institution_name == "Mapo Clinic"
    assert rows[0].matched_at == MATCHED_AT
    assert repository.for_serials([], year=YEAR) == []


def test_delete_other_claims_keeps_target(sqlite_session: Session) -> None:
    _seed(sqlite_session)
    _match(sqlite_session, "SN-1", "T-CLINIC")
    _match(sqlite_session, "SN-1", "T-SCHOOL")
    _match(sqlite_session, "SN-2", "T-BUSAN")
    sqlite_session.commit()
    repository = SqlAlchemyExistingMatchRepository(sqlite_session)

    deleted = repository.delete_other_claims(["SN-1"], keep_target_key="T-SCHOOL", year=YEAR)

    assert deleted == 1
    rows = repository.for_serials(["SN-1", "SN-2"], year=YEAR)
    remaining = {(row.equipment_serial, row.target_key) for row in rows}
    assert remaining == {("SN-1", "T-SCHOOL"), ("SN-2", "T-BUSAN")}


def test_delete_for_target_and_counts(sqlite_session: Session) -> None:
    _seed(sqlite_session)
    _match(sqlite_session, "SN-1", "T-SCHOOL")
    _match(sqlite_session, "SN-2", "T-SCHOOL")
    _match(sqlite_session, "SN-4", "T-BUSAN")
    sqlite_session.commit()
    repository = SqlAlchemyExistingMatchRepository(sqlite_session)

    assert repository.matched_counts(year=YEAR) == {"T-SCHOOL": 2, "T-BUSAN": 1}
    assert repository.delete_for_target("T-SCHOOL", year=YEAR) == 2
    assert repository.for_target("T-SCHOOL", year=YEAR) == []
    assert repository.matched_counts(year=YEAR) == {"T-BUSAN": 1}


def test_match_log_repository_orders_entries(sqlite_session: Session) -> None:
    repository = SqlAlchemyMatchLogRepository(sqlite_session)
    repository.add(
        MatchLogEntry(
            action=MatchAction.UNMATCH,
            year=YEAR,
            target_key="T-SCHOOL",
            created_at=MATCHED_AT + timedelta(hours=1),
        )
    )
    repository.add(
        MatchLogEntry(
            year=YEAR,
            target_key="T-SCHOOL",
            management_numbers=("MN-100", "MN-200"),
            reason="batch",
            created_at=MATCHED_AT,
        )
    )
    sqlite_session.commit()

    entries = repository.for_target("T-SCHOOL", year=YEAR)

    assert [entry.action for entry in entries] == [MatchAction.MATCH, MatchAction.UNMATCH]
    assert entries[0].management_numbers == ("MN-100", "MN-200")
    assert repository.for_target("T-SCHOOL", year=YEAR - 1) == []


def test_statement_timeout_is_only_issued_for_postgresql() -> None:
    assert statement_timeout_sql("postgresql", 2.5) == "SET LOCAL statement_timeout = 2500"
    assert statement_timeout_sql("postgresql", 0.0001) == "SET LOCAL statement_timeout = 1"
    assert statement_timeout_sql("sqlite", 2.5) is None


def test_existing_match_lookup_accepts_timeout_on_sqlite(sqlite_session: Session) -> None:
    _seed(sqlite_session)
    _match(sqlite_session, "SN-1", "T-CLINIC")
    sqlite_session.commit()
    repository = SqlAlchemyExistingMatchRepository(sqlite_session)

    rows = repository.for_serials(["SN-1"], year=YEAR, timeout=0.5)

    assert [row.target_key for row in rows] == ["T-CLINIC"]

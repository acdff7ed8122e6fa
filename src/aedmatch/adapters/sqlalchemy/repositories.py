"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import and_, delete, func, insert, or_, select, text

from aedmatch.adapters.sqlalchemy.mappings import (
    equipment_table,
    existing_match_table,
    match_log_table,
    target_institution_table,
)
from aedmatch.domain.model import (
    Device,
    ExistingMatch,
    Institution,
    MatchAction,
    MatchLogEntry,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy import Row
    from sqlalchemy.orm import Session

    from aedmatch.domain.model import (
        EquipmentSerial,
        ManagementNumber,
        MatchingMethod,
        TargetKey,
        Year,
    )


class SqlAlchemyInstitutionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Institution) -> None:
        self.session.execute(
            insert(target_institution_table).values(
                target_key=entity.target_key,
                name=entity.name,
                sido=entity.sido,
                gugun=entity.gugun,
                division=entity.division,
                sub_division=entity.sub_division,
                address=entity.address,
                unique_key=entity.unique_key,
            )
        )

    def get(self, target_key: TargetKey) -> Institution | None:
        stmt = select(target_institution_table).where(
            target_institution_table.c.target_key == target_key
        )
        row = self.session.execute(stmt).one_or_none()
        return None if row is None else _institution_from_row(row)

    def find(self, *, sido: str | None = None, gugun: str | None = None) -> list[Institution]:
        stmt = select(target_institution_table).order_by(
            target_institution_table.c.sido,
            target_institution_table.c.gugun,
            target_institution_table.c.name,
        )
        if sido is not None:
            stmt = stmt.where(target_institution_table.c.sido == sido)
        if gugun is not None:
            stmt = stmt.where(target_institution_table.c.gugun == gugun)
        return [_institution_from_row(row) for row in self.session.execute(stmt)]


class SqlAlchemyDeviceRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Device) -> None:
        self.session.execute(
            insert(equipment_table).values(
                equipment_serial=entity.equipment_serial,
                management_number=entity.management_number,
                institution_name=entity.institution_name,
                address=entity.address,
                installation_position=entity.installation_position,
                sido=entity.sido,
                gugun=entity.gugun,
            )
        )

    def for_management_numbers(
        self, management_numbers: Sequence[ManagementNumber]
    ) -> list[Device]:
        if not management_numbers:
            return []
        stmt = (
            select(equipment_table)
            .where(equipment_table.c.management_number.in_(list(management_numbers)))
            .order_by(equipment_table.c.management_number, equipment_table.c.equipment_serial)
        )
        return [_device_from_row(row) for row in self.session.execute(stmt)]

    def in_region(
        self,
        *,
        sido: str | None = None,
        gugun: str | None = None,
        search: str | None = None,
        limit: int | None = None,
    ) -> list[Device]:
        """Devices of the first ``limit`` management numbers matching the filters."""

        numbers = select(equipment_table.c.management_number).distinct()
        if sido is not None:
            numbers = numbers.where(equipment_table.c.sido == sido)
        if gugun is not None:
            numbers = numbers.where(equipment_table.c.gugun == gugun)
        if search:
            pattern = f"%{search.strip()}%"
            numbers = numbers.where(
                or_(
                    equipment_table.c.institution_name.ilike(pattern),
                    equipment_table.c.address.ilike(pattern),
                    equipment_table.c.management_number.ilike(pattern),
                    equipment_table.c.installation_position.ilike(pattern),
                )
            )
        numbers = numbers.order_by(equipment_table.c.management_number)
        if limit is not None:
            numbers = numbers.limit(limit)
        wanted = list(self.session.execute(numbers).scalars())
        return self.for_management_numbers(wanted)


def statement_timeout_sql(dialect_name: str, timeout: float) -> str | None:
    """Server-side statement limit for the current transaction, where the dialect has one."""

    if dialect_name == "postgresql":
        return f"SET LOCAL statement_timeout = {max(1, round(timeout * 1000))}"
    return None


class SqlAlchemyExistingMatchRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def for_serials(
        self,
        serials: Sequence[EquipmentSerial],
        *,
        year: Year,
        timeout: float | None = None,
    ) -> list[ExistingMatch]:
        if not serials:
            return []
        if timeout is not None:
            limit = statement_timeout_sql(self.session.get_bind().dialect.name, timeout)
            if limit is not None:
                self.session.execute(text(limit))
        stmt = self._select().where(
            and_(
                existing_match_table.c.year == year,
                existing_match_table.c.equipment_serial.in_(list(serials)),
            )
        )
        return [_match_from_row(row) for row in self.session.execute(stmt)]

    def for_target(self, target_key: TargetKey, *, year: Year) -> list[ExistingMatch]:
        stmt = self._select().where(
            and_(
                existing_match_table.c.year == year,
                existing_match_table.c.target_key == target_key,
            )
        )
        return [_match_from_row(row) for row in self.session.execute(stmt)]

    def add(
        self,
        *,
        equipment_serial: EquipmentSerial,
        target_key: TargetKey,
        year: Year,
        matched_at: datetime,
        matched_by: str | None = None,
        matching_method: MatchingMethod,
    ) -> None:
        self.session.execute(
            insert(existing_match_table).values(
                equipment_serial=equipment_serial,
                target_key=target_key,
                year=year,
                matched_at=matched_at,
                matched_by=matched_by,
                matching_method=matching_method,
            )
        )

    def delete_other_claims(
        self,
        serials: Sequence[EquipmentSerial],
        *,
        keep_target_key: TargetKey,
        year: Year,
    ) -> int:
        if not serials:
            return 0
        stmt = delete(existing_match_table).where(
            and_(
                existing_match_table.c.year == year,
                existing_match_table.c.equipment_serial.in_(list(serials)),
                existing_match_table.c.target_key != keep_target_key,
            )
        )
        return _rowcount(self.session.execute(stmt))

    def delete_for_target(self, target_key: TargetKey, *, year: Year) -> int:
        stmt = delete(existing_match_table).where(
            and_(
                existing_match_table.c.year == year,
                existing_match_table.c.target_key == target_key,
            )
        )
        return _rowcount(self.session.execute(stmt))

    def matched_counts(self, *, year: Year) -> dict[TargetKey, int]:
        stmt = (
            select(existing_match_table.c.target_key, func.count())
            .where(existing_match_table.c.year == year)
            .group_by(existing_match_table.c.target_key)
        )
        return {key: count for key, count in self.session.execute(stmt).tuples()}

    @staticmethod
    def _select():  # noqa: ANN205
        return (
            select(
                existing_match_table.c.equipment_serial,
                existing_match_table.c.target_key,
                existing_match_table.c.matched_at,
                equipment_table.c.management_number,
                target_institution_table.c.name.label("institution_name"),
            )
            .select_from(existing_match_table)
            .outerjoin(
                equipment_table,
                equipment_table.c.equipment_serial == existing_match_table.c.equipment_serial,
            )
            .outerjoin(
                target_institution_table,
                target_institution_table.c.target_key == existing_match_table.c.target_key,
            )
            .order_by(existing_match_table.c.equipment_serial, existing_match_table.c.matched_at)
        )


class SqlAlchemyMatchLogRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: MatchLogEntry) -> None:
        self.session.execute(
            insert(match_log_table).values(
                action=entity.action,
                year=entity.year,
                target_key=entity.target_key,
                management_numbers=list(entity.management_numbers),
                reason=entity.reason,
                user_id=entity.user_id,
                created_at=entity.created_at,
            )
        )

    def for_target(self, target_key: TargetKey, *, year: Year) -> list[MatchLogEntry]:
        stmt = (
            select(match_log_table)
            .where(match_log_table.c.target_key == target_key)
            .where(match_log_table.c.year == year)
            .order_by(match_log_table.c.created_at, match_log_table.c.id)
        )
        entries: list[MatchLogEntry] = []
        for row in self.session.execute(stmt):
            numbers = cast(list[Any], row.management_numbers or [])
            entries.append(
                MatchLogEntry(
                    action=MatchAction(row.action),
                    year=row.year,
                    target_key=row.target_key,
                    management_numbers=tuple(str(number) for number in numbers),
                    reason=row.reason,
                    user_id=row.user_id,
                    created_at=row.created_at,
                )
            )
        return entries


def _institution_from_row(row: Row[Any]) -> Institution:
    return Institution(
        target_key=row.target_key,
        name=row.name,
        sido=row.sido,
        gugun=row.gugun,
        division=row.division,
        sub_division=row.sub_division,
        address=row.address,
        unique_key=row.unique_key,
    )


def _device_from_row(row: Row[Any]) -> Device:
    return Device(
        equipment_serial=row.equipment_serial,
        management_number=row.management_number,
        institution_name=row.institution_name or "",
        address=row.address or "",
        installation_position=row.installation_position,
        sido=row.sido,
        gugun=row.gugun,
    )


def _match_from_row(row: Row[Any]) -> ExistingMatch:
    return ExistingMatch(
        equipment_serial=row.equipment_serial,
        target_key=row.target_key,
        management_number=row.management_number or "",
        matched_at=row.matched_at,
        institution_name=row.institution_name or "",
    )


def _rowcount(result: object) -> int:
    count = getattr(result, "rowcount", None)
    return count if isinstance(count, int) and count >= 0 else 0


if TYPE_CHECKING:
    from aedmatch.domain.ports.persistence import (
        DeviceRepository,
        ExistingMatchRepository,
        InstitutionRepository,
        MatchLogRepository,
    )

    _session_stub = cast("Session", object())
    _institution_repo: InstitutionRepository = SqlAlchemyInstitutionRepository(_session_stub)
    _device_repo: DeviceRepository = SqlAlchemyDeviceRepository(_session_stub)
    _match_repo: ExistingMatchRepository = SqlAlchemyExistingMatchRepository(_session_stub)
    _log_repo: MatchLogRepository = SqlAlchemyMatchLogRepository(_session_stub)

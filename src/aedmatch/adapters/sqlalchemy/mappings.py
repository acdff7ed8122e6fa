"""SQLAlchemy table metadata for the matching store."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
)

from aedmatch.domain.model import MatchAction, MatchingMethod

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

# Core tables -----------------------------------------------------------------

target_institution_table = Table(
    "target_institution",
    metadata,
    Column("target_key", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("sido", String, nullable=True),
    Column("gugun", String, nullable=True),
    Column("division", String, nullable=True),
    Column("sub_division", String, nullable=True),
    Column("address", String, nullable=True),
    Column("unique_key", String, nullable=True),
    Index("ix_target_institution_region", "sido", "gugun"),
)

equipment_table = Table(
    "equipment",
    metadata,
    Column("equipment_serial", String, primary_key=True),
    Column("management_number", String, nullable=False, index=True),
    Column("institution_name", String, nullable=False, default=""),
    Column("address", String, nullable=False, default=""),
    Column("installation_position", String, nullable=True),
    Column("sido", String, nullable=True),
    Column("gugun", String, nullable=True),
    Index("ix_equipment_region", "sido", "gugun"),
)

existing_match_table = Table(
    "existing_match",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "equipment_serial",
        String,
        ForeignKey("equipment.equipment_serial"),
        nullable=False,
    ),
    Column(
        "target_key",
        String,
        ForeignKey("target_institution.target_key"),
        nullable=False,
    ),
    Column("year", Integer, nullable=False),
    Column("matched_at", UTCDateTime(), nullable=False),
    Column("matched_by", String, nullable=True),
    Column(
        "matching_method",
        Enum(MatchingMethod, native_enum=False),
        nullable=False,
        default=MatchingMethod.MANUAL,
    ),
    UniqueConstraint("equipment_serial", "target_key", "year"),
    Index("ix_existing_match_year_serial", "year", "equipment_serial"),
    Index("ix_existing_match_year_target", "year", "target_key"),
)

match_log_table = Table(
    "match_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("action", Enum(MatchAction, native_enum=False), nullable=False),
    Column("year", Integer, nullable=False),
    Column("target_key", String, nullable=False, index=True),
    Column("management_numbers", JSON, nullable=False),
    Column("reason", String, nullable=True),
    Column("user_id", String, nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
)


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the matching metadata."""

    log.debug("Creating tables on %s", engine.url)
    metadata.create_all(engine)

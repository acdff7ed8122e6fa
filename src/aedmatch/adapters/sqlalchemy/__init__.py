"""SQLAlchemy adapter package for aedmatch."""

from __future__ import annotations

from .mappings import (
    create_all_tables,
    equipment_table,
    existing_match_table,
    match_log_table,
    metadata,
    target_institution_table,
)
from .repositories import (
    SqlAlchemyDeviceRepository,
    SqlAlchemyExistingMatchRepository,
    SqlAlchemyInstitutionRepository,
    SqlAlchemyMatchLogRepository,
)
from .sources import SqlAlchemyCandidateSource, SqlAlchemyExistingMatchQuery
from .unit_of_work import (
    SqlAlchemyMatchingUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyCandidateSource",
    "SqlAlchemyDeviceRepository",
    "SqlAlchemyExistingMatchQuery",
    "SqlAlchemyExistingMatchRepository",
    "SqlAlchemyInstitutionRepository",
    "SqlAlchemyMatchLogRepository",
    "SqlAlchemyMatchingUnitOfWork",
    "StartupError",
    "configured_engine",
    "create_all_tables",
    "equipment_table",
    "existing_match_table",
    "is_started",
    "match_log_table",
    "metadata",
    "shutdown",
    "startup",
    "target_institution_table",
]

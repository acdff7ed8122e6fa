from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.orm import Session

from aedmatch.adapters.sqlalchemy import create_all_tables
from aedmatch.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyMatchingUnitOfWork,
    shutdown,
    startup,
)
from tests.helpers.matching import seed_registry

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyMatchingUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyMatchingUnitOfWork:
        return SqlAlchemyMatchingUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def seeded_unit_of_work(
    sqlite_unit_of_work: Callable[[], SqlAlchemyMatchingUnitOfWork],
) -> Callable[[], SqlAlchemyMatchingUnitOfWork]:
    seed_registry(sqlite_unit_of_work)
    return sqlite_unit_of_work


@pytest.fixture
def sqlite_session(sqlite_engine: Engine) -> Iterator[Session]:
    session = Session(sqlite_engine)
    try:
        yield session
    finally:
        session.close()

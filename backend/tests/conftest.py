"""Shared pytest fixtures."""

from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from uibattles.db import create_tables, make_engine, make_session_factory
from uibattles.services.store import GenerationStore


@pytest.fixture()
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """File-backed SQLite engine so executor threads each get their own connection."""
    engine = make_engine(f"sqlite:///{tmp_path / 'uibattles.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Callable[[], Session]:
    return make_session_factory(engine)


@pytest.fixture()
def db_session(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(session_factory: Callable[[], Session]) -> GenerationStore:
    return GenerationStore(session_factory)


@pytest.fixture()
def mock_runner() -> MagicMock:
    """BackgroundRunner stand-in that records submissions without running them."""
    return MagicMock()

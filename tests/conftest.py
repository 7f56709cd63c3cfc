from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from pytest import MonkeyPatch
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel

from crewtrack.core.config import get_settings
from crewtrack.db.engine import create_engine_from_url, dispose_engine
from crewtrack.db.models import Crew
from crewtrack.main import create_app
from tests.shared import ApiTestContext


def _to_sqlite_url(path: Path) -> str:
    return f"sqlite:///{path.as_posix()}"


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    db_engine = create_engine_from_url(_to_sqlite_url(tmp_path / "crewtrack-test.db"))
    SQLModel.metadata.create_all(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session(engine: Engine) -> Iterator[Session]:
    with Session(engine, expire_on_commit=False) as db_session:
        yield db_session


@pytest.fixture
def api_context(tmp_path: Path, monkeypatch: MonkeyPatch) -> Iterator[ApiTestContext]:
    """
    Creates a temporary SQLite database and a test client.
    Seeds three crew members the API tests staff roles and tasks with.
    """
    db_url = _to_sqlite_url(tmp_path / "api-integration.db")
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("ESCALATION_SWEEP_ENABLED", "false")
    get_settings.cache_clear()
    dispose_engine()

    db_engine = create_engine_from_url(db_url)
    SQLModel.metadata.create_all(db_engine)

    with Session(db_engine) as db_session:
        crew = [
            Crew(name="Avery Lin", email="avery@example.com"),
            Crew(name="Jordan Okafor", email="jordan@example.com"),
            Crew(name="Sam Reyes", email="sam@example.com"),
        ]
        db_session.add_all(crew)
        db_session.commit()
        crew_ids = [int(member.id) for member in crew if member.id is not None]

    with TestClient(create_app()) as client:
        yield ApiTestContext(client=client, engine=db_engine, crew_ids=crew_ids)

    db_engine.dispose()
    dispose_engine()
    get_settings.cache_clear()

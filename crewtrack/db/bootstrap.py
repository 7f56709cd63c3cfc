from __future__ import annotations

from sqlmodel import Session

from crewtrack.core.config import get_settings
from crewtrack.db.engine import create_engine_from_url, ensure_database_parent_dir
from crewtrack.db.migrations import upgrade_to_head
from crewtrack.db.seed import seed_initial_data


def initialize_database(
    database_url: str | None = None,
    *,
    seed: bool = False,
) -> None:
    target_url = database_url or get_settings().database_url
    ensure_database_parent_dir(target_url)
    upgrade_to_head(target_url)

    if not seed:
        return

    engine = create_engine_from_url(target_url)
    try:
        with Session(engine) as session:
            seed_initial_data(session)
    finally:
        engine.dispose()

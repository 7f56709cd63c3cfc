from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from crewtrack.core.logging import bind_log_context, clear_log_context, get_logger
from crewtrack.db.session import session_scope
from crewtrack.orchestration.progression import PhaseProgressionAggregator

logger = get_logger("crewtrack.orchestration.sweeper")


def run_escalation_sweep_once(*, now: datetime | None = None) -> int:
    with session_scope() as session:
        return PhaseProgressionAggregator(session).escalate_overdue_tasks(now)


async def run_escalation_sweep_loop(*, interval_seconds: int) -> None:
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be greater than 0")
    while True:
        bind_log_context(trace_id=f"trace-escalation-sweep-{datetime.now(UTC).timestamp()}")
        try:
            run_escalation_sweep_once()
        except Exception:
            logger.exception("escalation_sweep.loop_failed")
        finally:
            clear_log_context()
        await asyncio.sleep(interval_seconds)

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from crewtrack.api.deps import ProgressionDep

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


class EscalationSweepRead(BaseModel):
    escalated: int


@router.post("/escalate-overdue", response_model=EscalationSweepRead)
def escalate_overdue(progression: ProgressionDep) -> EscalationSweepRead:
    return EscalationSweepRead(escalated=progression.escalate_overdue_tasks())

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy.sql.functions import Function

from crewtrack.db.enums import TaskStatus
from crewtrack.orchestration.lifecycle import build_transition_values
from crewtrack.orchestration.state_machine import (
    TASK_STATUS_EFFECTS,
    FieldEffect,
    InvalidTaskStatusError,
    parse_task_status,
)

NOW = datetime(2026, 10, 12, 9, 30, tzinfo=UTC)


def test_every_status_has_effects() -> None:
    assert set(TASK_STATUS_EFFECTS) == set(TaskStatus)


def test_parse_task_status_accepts_enum_and_loose_strings() -> None:
    assert parse_task_status(TaskStatus.ONGOING) is TaskStatus.ONGOING
    assert parse_task_status(" Completed ") is TaskStatus.COMPLETED


def test_parse_task_status_rejects_unknown_value() -> None:
    with pytest.raises(InvalidTaskStatusError, match="Allowed values"):
        parse_task_status("done")


def test_pending_is_a_hard_reset() -> None:
    values = build_transition_values(TaskStatus.PENDING, now=NOW)

    assert values == {
        "status": "pending",
        "started_at": None,
        "completed_at": None,
        "escalated_at": None,
        "escalation_reason": None,
        "is_manually_escalated": False,
    }


def test_ongoing_sets_started_at_only_when_unset() -> None:
    values = build_transition_values(TaskStatus.ONGOING, now=NOW)

    assert isinstance(values["started_at"], Function)
    assert values["started_at"].name == "coalesce"
    assert "completed_at" not in values
    assert values["escalated_at"] is None
    assert values["escalation_reason"] is None


def test_completed_refreshes_completed_at() -> None:
    effects = TASK_STATUS_EFFECTS[TaskStatus.COMPLETED]
    values = build_transition_values(TaskStatus.COMPLETED, now=NOW)

    assert effects.completed_at is FieldEffect.SET_NOW
    assert values["completed_at"] == NOW
    assert values["escalated_at"] is None


def test_escalated_keeps_details_unless_supplied() -> None:
    bare = build_transition_values(TaskStatus.ESCALATED, now=NOW)
    assert "escalation_reason" not in bare
    assert "is_manually_escalated" not in bare
    assert "completed_at" not in bare

    supplied = build_transition_values(
        TaskStatus.ESCALATED,
        now=NOW,
        escalation_reason="Generator failed",
        is_manually_escalated=True,
    )
    assert supplied["escalation_reason"] == "Generator failed"
    assert supplied["is_manually_escalated"] is True


def test_escalation_payload_is_ignored_for_non_escalated_targets() -> None:
    values = build_transition_values(
        TaskStatus.ONGOING,
        now=NOW,
        escalation_reason="ignored",
        is_manually_escalated=True,
    )

    assert values["escalation_reason"] is None
    assert values["is_manually_escalated"] is False

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import pytest
from sqlmodel import Session

from crewtrack.db.enums import ProjectStatus, TaskStatus
from crewtrack.db.models import Crew, utc_now
from tests.shared import ApiTestContext, make_project, make_role, make_task, make_task_assignment

API = "/api/v1"


@dataclass
class SeededTasks:
    project_id: int
    task_id: int
    producer_id: int
    gaffer_id: int


@pytest.fixture
def seeded(api_context: ApiTestContext) -> SeededTasks:
    with Session(api_context.engine, expire_on_commit=False) as session:
        project = make_project(session, status=ProjectStatus.ACTIVE)
        producer = make_role(session, project, "Producer", is_filled=True)
        gaffer = make_role(session, project, "Gaffer", department_name="Lighting", is_filled=True)
        task = make_task(session, project, name="Lock budget", task_order=1)
        make_task(session, project, name="Scout locations", task_order=2)
        make_task(session, project, name="Light main set", phase_order=2, is_loaded=False)
        avery = session.get(Crew, api_context.crew_ids[0])
        assert avery is not None
        make_task_assignment(session, task, producer, avery)
        session.commit()
        return SeededTasks(
            project_id=int(project.id or 0),
            task_id=int(task.id or 0),
            producer_id=int(producer.id or 0),
            gaffer_id=int(gaffer.id or 0),
        )


def test_list_tasks_returns_loaded_page(api_context: ApiTestContext, seeded: SeededTasks) -> None:
    response = api_context.client.get(
        f"{API}/tasks", params={"project_id": seeded.project_id, "page_size": 1}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_count"] == 2
    assert body["has_next_page"] is True
    assert [task["name"] for task in body["items"]] == ["Lock budget"]


def test_list_tasks_can_include_unloaded_and_filter(
    api_context: ApiTestContext, seeded: SeededTasks
) -> None:
    everything = api_context.client.get(
        f"{API}/tasks", params={"project_id": seeded.project_id, "include_unloaded": True}
    ).json()
    searched = api_context.client.get(
        f"{API}/tasks", params={"project_id": seeded.project_id, "search": "SCOUT"}
    ).json()
    assigned = api_context.client.get(
        f"{API}/tasks",
        params={"project_id": seeded.project_id, "assigned_crew_id": api_context.crew_ids[0]},
    ).json()

    assert everything["total_count"] == 3
    assert [task["name"] for task in searched["items"]] == ["Scout locations"]
    assert [task["id"] for task in assigned["items"]] == [seeded.task_id]


def test_list_tasks_rejects_oversized_page(
    api_context: ApiTestContext, seeded: SeededTasks
) -> None:
    response = api_context.client.get(
        f"{API}/tasks", params={"project_id": seeded.project_id, "page_size": 500}
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_status_transition_round_trip(api_context: ApiTestContext, seeded: SeededTasks) -> None:
    client = api_context.client

    escalated = client.post(
        f"{API}/tasks/{seeded.task_id}/status",
        json={
            "status": "escalated",
            "escalation_reason": "Vendor quote missing",
            "is_manually_escalated": True,
            "actor": "avery",
        },
    ).json()
    reset = client.post(f"{API}/tasks/{seeded.task_id}/status", json={"status": "pending"}).json()

    assert escalated["status"] == "escalated"
    assert escalated["escalation_reason"] == "Vendor quote missing"
    assert escalated["started_at"] is not None
    assert escalated["updated_by"] == "avery"
    assert reset["status"] == "pending"
    assert reset["started_at"] is None
    assert reset["escalated_at"] is None
    assert reset["is_manually_escalated"] is False
    assert reset["version"] == 3


def test_status_transition_rejects_unknown_status(
    api_context: ApiTestContext, seeded: SeededTasks
) -> None:
    response = api_context.client.post(
        f"{API}/tasks/{seeded.task_id}/status", json={"status": "paused"}
    )

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["issues"][0]["field"] == "body.status"


def test_unknown_task_returns_not_found(api_context: ApiTestContext) -> None:
    response = api_context.client.post(f"{API}/tasks/9999/status", json={"status": "ongoing"})

    assert response.status_code == 404
    assert response.json()["error"]["context"]["task_id"] == 9999


def test_assign_and_remove_crew(api_context: ApiTestContext, seeded: SeededTasks) -> None:
    client = api_context.client
    jordan = api_context.crew_ids[1]

    assigned = client.post(
        f"{API}/tasks/{seeded.task_id}/assignments",
        json={"crew_id": jordan, "role_id": seeded.gaffer_id},
    )
    repeated = client.post(f"{API}/tasks/{seeded.task_id}/assignments", json={"crew_id": jordan})

    assert assigned.status_code == 200
    assert len(repeated.json()) == 2
    by_crew = {row["crew_id"]: row["role_name"] for row in assigned.json()}
    assert by_crew[jordan] == "Gaffer"

    removed = client.delete(f"{API}/tasks/{seeded.task_id}/assignments/{jordan}")
    assert removed.status_code == 204

    last = client.delete(
        f"{API}/tasks/{seeded.task_id}/assignments/{api_context.crew_ids[0]}"
    )
    assert last.status_code == 409
    error = last.json()["error"]
    assert error["code"] == "LAST_ASSIGNEE_VIOLATION"
    assert error["context"]["operation"] == "assignment.remove"
    remaining = client.get(f"{API}/tasks/{seeded.task_id}/assignments").json()
    assert [row["crew_id"] for row in remaining] == [api_context.crew_ids[0]]


def test_batch_assignment_is_all_or_nothing(
    api_context: ApiTestContext, seeded: SeededTasks
) -> None:
    client = api_context.client
    jordan, sam = api_context.crew_ids[1], api_context.crew_ids[2]

    conflict = client.post(
        f"{API}/tasks/{seeded.task_id}/assignments/batch",
        json={
            "assignments": [
                {"crew_id": jordan, "role_id": seeded.gaffer_id},
                {"crew_id": api_context.crew_ids[0], "role_id": seeded.gaffer_id},
            ]
        },
    )
    assert conflict.status_code == 409
    assert conflict.json()["error"]["code"] == "CONFLICT"
    assert len(client.get(f"{API}/tasks/{seeded.task_id}/assignments").json()) == 1

    created = client.post(
        f"{API}/tasks/{seeded.task_id}/assignments/batch",
        json={
            "assignments": [
                {"crew_id": jordan, "role_id": seeded.gaffer_id},
                {"crew_id": sam, "role_id": seeded.producer_id},
            ]
        },
    )
    assert created.status_code == 201
    assert created.json() == {"task_id": seeded.task_id, "created": 2}


def test_escalate_overdue_endpoint(api_context: ApiTestContext) -> None:
    with Session(api_context.engine, expire_on_commit=False) as session:
        project = make_project(session, status=ProjectStatus.ACTIVE)
        overdue = make_task(session, project, deadline=utc_now() - timedelta(hours=2))
        make_task(
            session,
            project,
            task_order=2,
            deadline=utc_now() - timedelta(hours=2),
            status=TaskStatus.COMPLETED,
        )
        session.commit()
        overdue_id = int(overdue.id or 0)

    response = api_context.client.post(f"{API}/maintenance/escalate-overdue")

    assert response.json() == {"escalated": 1}
    task = api_context.client.get(f"{API}/tasks/{overdue_id}").json()
    assert task["status"] == "escalated"
    assert task["escalation_reason"] == "Task deadline exceeded"
    assert task["is_manually_escalated"] is False


def test_patch_task_details(api_context: ApiTestContext, seeded: SeededTasks) -> None:
    client = api_context.client

    updated = client.patch(
        f"{API}/tasks/{seeded.task_id}",
        json={
            "name": "Lock revised budget",
            "checklist_items": [{"text": "Collect quotes", "completed": True}],
            "expected_version": 1,
            "actor": "avery",
        },
    )
    stale = client.patch(
        f"{API}/tasks/{seeded.task_id}", json={"name": "Too late", "expected_version": 1}
    )
    blank = client.patch(f"{API}/tasks/{seeded.task_id}", json={"actor": "avery"})

    assert updated.status_code == 200
    body = updated.json()
    assert body["name"] == "Lock revised budget"
    assert body["checklist_items"] == [{"text": "Collect quotes", "completed": True}]
    assert body["status"] == "pending"
    assert body["started_at"] is None
    assert body["updated_by"] == "avery"
    assert body["version"] == 2
    assert stale.status_code == 409
    assert stale.json()["error"]["code"] == "CONFLICT"
    assert blank.status_code == 422


def test_overdue_tasks_endpoint(api_context: ApiTestContext) -> None:
    with Session(api_context.engine, expire_on_commit=False) as session:
        project = make_project(session, status=ProjectStatus.ACTIVE)
        late = make_task(session, project, name="Late", deadline=utc_now() - timedelta(hours=2))
        make_task(session, project, task_order=2, deadline=utc_now() + timedelta(hours=2))
        session.commit()
        late_id = int(late.id or 0)

    response = api_context.client.get(f"{API}/tasks/overdue")

    assert response.status_code == 200
    assert [task["id"] for task in response.json()] == [late_id]


def test_dashboard_endpoint(api_context: ApiTestContext, seeded: SeededTasks) -> None:
    response = api_context.client.get(f"{API}/dashboard")

    assert response.status_code == 200
    body = response.json()
    assert body["total_projects"] == 1
    assert body["projects_by_status"]["active"] == 1
    assert body["total_tasks"] == 2
    assert body["tasks_by_status"]["pending"] == 2
    assert body["overdue_tasks"] == 0
    assert body["completion_percentage"] == 0.0

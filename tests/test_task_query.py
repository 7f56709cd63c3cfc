from __future__ import annotations

from datetime import timedelta

import pytest
from sqlmodel import Session

from crewtrack.db.enums import ProjectStatus, TaskCategory, TaskStatus
from crewtrack.db.models import Project, utc_now
from crewtrack.db.repositories.task_repository import TaskFilters, escape_like
from crewtrack.orchestration.errors import NotFoundError, ValidationError
from crewtrack.orchestration.query import TaskQueryEngine
from tests.shared import (
    make_crew,
    make_project,
    make_role,
    make_task,
    make_task_assignment,
)


@pytest.fixture
def project(session: Session) -> Project:
    project = make_project(session)
    session.commit()
    return project


def test_list_tasks_orders_by_phase_step_and_task_order(
    session: Session, project: Project
) -> None:
    make_task(session, project, name="c", phase_order=2, step_order=1, task_order=1)
    make_task(session, project, name="b", phase_order=1, step_order=2, task_order=1)
    make_task(session, project, name="a2", phase_order=1, step_order=1, task_order=2)
    make_task(session, project, name="a1", phase_order=1, step_order=1, task_order=1)
    session.commit()

    tasks = TaskQueryEngine(session).list_tasks(TaskFilters(project_id=int(project.id or 0)))

    assert [task.name for task in tasks] == ["a1", "a2", "b", "c"]


def test_consecutive_pages_are_disjoint_and_follow_listing_order(
    session: Session, project: Project
) -> None:
    for index in range(45):
        make_task(
            session,
            project,
            name=f"task-{index:02d}",
            phase_order=index % 3,
            step_order=index % 2,
            task_order=index,
        )
    session.commit()
    engine = TaskQueryEngine(session)
    filters = TaskFilters(project_id=int(project.id or 0))

    first = engine.paginate(filters, page=1, page_size=20)
    second = engine.paginate(filters, page=2, page_size=20)
    third = engine.paginate(filters, page=3, page_size=20)

    first_ids = [task.id for task in first.items]
    second_ids = [task.id for task in second.items]
    assert set(first_ids).isdisjoint(second_ids)
    listing_ids = [task.id for task in engine.list_tasks(filters)]
    assert first_ids + second_ids == listing_ids[:40]
    assert first.total_count == 45
    assert first.has_next_page is True
    assert second.has_next_page is True
    assert len(third.items) == 5
    assert third.has_next_page is False


def test_default_listing_hides_unloaded_and_archived_tasks(
    session: Session, project: Project
) -> None:
    make_task(session, project, name="loaded", task_order=1)
    make_task(session, project, name="future", task_order=2, is_loaded=False)
    make_task(session, project, name="gone", task_order=3, is_archived=True)
    session.commit()
    engine = TaskQueryEngine(session)
    project_id = int(project.id or 0)

    default_names = [task.name for task in engine.list_tasks(TaskFilters(project_id=project_id))]
    all_names = [
        task.name for task in engine.list_tasks(TaskFilters(project_id=project_id, is_loaded=None))
    ]

    assert default_names == ["loaded"]
    assert all_names == ["loaded", "future"]


def test_status_and_category_filters_match_any_member(session: Session, project: Project) -> None:
    make_task(session, project, name="p", task_order=1, category=TaskCategory.MONITOR)
    make_task(
        session,
        project,
        name="o",
        task_order=2,
        status=TaskStatus.ONGOING,
        category=TaskCategory.EXECUTE,
    )
    make_task(
        session,
        project,
        name="e",
        task_order=3,
        status=TaskStatus.ESCALATED,
        category=TaskCategory.EXECUTE,
    )
    session.commit()
    engine = TaskQueryEngine(session)
    project_id = int(project.id or 0)

    by_status = engine.list_tasks(
        TaskFilters(
            project_id=project_id,
            statuses=frozenset({TaskStatus.PENDING, TaskStatus.ESCALATED}),
        )
    )
    by_status_and_category = engine.list_tasks(
        TaskFilters(
            project_id=project_id,
            statuses=frozenset({TaskStatus.PENDING, TaskStatus.ESCALATED}),
            categories=frozenset({TaskCategory.EXECUTE}),
        )
    )

    assert [task.name for task in by_status] == ["p", "e"]
    assert [task.name for task in by_status_and_category] == ["e"]


def test_search_matches_name_or_description_case_insensitively(
    session: Session, project: Project
) -> None:
    make_task(session, project, name="Book CATERING", task_order=1)
    make_task(session, project, name="Call vendor", description="catering deposit", task_order=2)
    make_task(session, project, name="Rig lights", task_order=3)
    session.commit()

    tasks = TaskQueryEngine(session).list_tasks(
        TaskFilters(project_id=int(project.id or 0), search="  Catering ")
    )

    assert [task.name for task in tasks] == ["Book CATERING", "Call vendor"]


def test_search_treats_like_wildcards_literally(session: Session, project: Project) -> None:
    make_task(session, project, name="Budget 100% locked", task_order=1)
    make_task(session, project, name="Budget 1000 draft", task_order=2)
    session.commit()

    tasks = TaskQueryEngine(session).list_tasks(
        TaskFilters(project_id=int(project.id or 0), search="100%")
    )

    assert [task.name for task in tasks] == ["Budget 100% locked"]
    assert escape_like("a_b%c\\") == "a\\_b\\%c\\\\"


def test_phase_step_custom_and_crew_filters(session: Session, project: Project) -> None:
    role = make_role(session, project, "Producer")
    crew = make_crew(session, "Avery")
    staffed = make_task(session, project, name="staffed", phase_order=1, step_order=2, task_order=1)
    make_task(session, project, name="custom", phase_order=1, step_order=2, task_order=2, is_custom=True)
    make_task(session, project, name="other-step", phase_order=1, step_order=1, task_order=1)
    make_task_assignment(session, staffed, role, crew)
    session.commit()
    engine = TaskQueryEngine(session)
    project_id = int(project.id or 0)

    step_two = engine.list_tasks(TaskFilters(project_id=project_id, phase_order=1, step_order=2))
    custom = engine.list_tasks(TaskFilters(project_id=project_id, is_custom=True))
    assigned = engine.list_tasks(TaskFilters(project_id=project_id, assigned_crew_id=crew.id))

    assert [task.name for task in step_two] == ["staffed", "custom"]
    assert [task.name for task in custom] == ["custom"]
    assert [task.name for task in assigned] == ["staffed"]


def test_paginate_validates_page_arguments(session: Session, project: Project) -> None:
    engine = TaskQueryEngine(session, max_page_size=50)
    filters = TaskFilters(project_id=int(project.id or 0))

    with pytest.raises(ValidationError):
        engine.paginate(filters, page=0, page_size=10)
    with pytest.raises(ValidationError):
        engine.paginate(filters, page=1, page_size=51)


def test_get_task_hides_archived_tasks(session: Session, project: Project) -> None:
    visible = make_task(session, project, task_order=1)
    archived = make_task(session, project, task_order=2, is_archived=True)
    session.commit()
    engine = TaskQueryEngine(session)

    assert engine.get_task(int(visible.id or 0)).id == visible.id
    with pytest.raises(NotFoundError):
        engine.get_task(int(archived.id or 0))


def test_deadline_before_filter_skips_tasks_without_deadline(
    session: Session, project: Project
) -> None:
    now = utc_now()
    make_task(session, project, name="late", task_order=1, deadline=now - timedelta(hours=1))
    make_task(session, project, name="upcoming", task_order=2, deadline=now + timedelta(hours=1))
    make_task(session, project, name="open-ended", task_order=3)
    session.commit()

    tasks = TaskQueryEngine(session).list_tasks(
        TaskFilters(project_id=int(project.id or 0), deadline_before=now)
    )

    assert [task.name for task in tasks] == ["late"]


def test_list_overdue_tasks_spans_live_projects_by_deadline(
    session: Session, project: Project
) -> None:
    now = utc_now()
    other = make_project(session, name="Second unit", status=ProjectStatus.ACTIVE)
    shelved = make_project(session, name="Shelved")
    shelved.is_archived = True
    session.add(shelved)
    make_task(session, project, name="two-days-late", deadline=now - timedelta(days=2))
    make_task(
        session,
        other,
        name="one-day-late-unloaded",
        is_loaded=False,
        deadline=now - timedelta(days=1),
    )
    make_task(
        session,
        other,
        name="late-but-done",
        task_order=2,
        status=TaskStatus.COMPLETED,
        deadline=now - timedelta(days=3),
    )
    make_task(
        session,
        other,
        name="late-and-escalated",
        task_order=3,
        status=TaskStatus.ESCALATED,
        deadline=now - timedelta(days=3),
    )
    make_task(session, shelved, name="late-in-archive", deadline=now - timedelta(days=5))
    session.commit()
    engine = TaskQueryEngine(session)

    everywhere = engine.list_overdue_tasks(now=now)
    scoped = engine.list_overdue_tasks(now=now, project_id=int(other.id or 0))

    assert [task.name for task in everywhere] == ["two-days-late", "one-day-late-unloaded"]
    assert [task.name for task in scoped] == ["one-day-late-unloaded"]

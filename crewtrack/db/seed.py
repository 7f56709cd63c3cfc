from __future__ import annotations

from sqlmodel import Session, select

from crewtrack.db.models import Crew, Project
from crewtrack.db.procedures import (
    SYSTEM_ACTOR,
    ProjectFields,
    SqlStoreProcedures,
    TemplateSnapshot,
)

DEFAULT_PROJECT_NAME = "Crewtrack Demo Production"

DEFAULT_CREW_DEFINITIONS: tuple[dict[str, str], ...] = (
    {"name": "Avery Lin", "email": "avery.lin@example.com"},
    {"name": "Jordan Okafor", "email": "jordan.okafor@example.com"},
    {"name": "Sam Reyes", "email": "sam.reyes@example.com"},
)

DEFAULT_TEMPLATE: dict[str, object] = {
    "roles": [
        {"role_name": "Producer", "department_name": "Production"},
        {"role_name": "Gaffer", "department_name": "Lighting"},
    ],
    "phases": [
        {
            "phase_name": "Pre-production",
            "phase_order": 1,
            "steps": [
                {
                    "step_name": "Planning",
                    "step_order": 1,
                    "tasks": [
                        {
                            "key": "budget",
                            "name": "Lock budget",
                            "task_order": 1,
                            "category": "coordinate",
                            "role_name": "Producer",
                        },
                        {
                            "name": "Scout locations",
                            "task_order": 2,
                            "category": "execute",
                            "role_name": "Gaffer",
                            "parent_key": "budget",
                        },
                    ],
                }
            ],
        },
        {
            "phase_name": "Production",
            "phase_order": 2,
            "steps": [
                {
                    "step_name": "Shoot",
                    "step_order": 1,
                    "tasks": [
                        {
                            "name": "Light main set",
                            "task_order": 1,
                            "category": "execute",
                            "role_name": "Gaffer",
                        },
                        {
                            "name": "Daily wrap report",
                            "task_order": 2,
                            "category": "monitor",
                            "role_name": "Producer",
                        },
                    ],
                }
            ],
        },
    ],
}


def seed_initial_data(session: Session) -> None:
    """Insert demo crew and one draft project; rows that already exist are left alone."""
    existing_emails = set(session.exec(select(Crew.email)).all())
    for definition in DEFAULT_CREW_DEFINITIONS:
        if definition["email"] in existing_emails:
            continue
        session.add(Crew(name=definition["name"], email=definition["email"]))

    project = session.exec(select(Project).where(Project.name == DEFAULT_PROJECT_NAME)).first()
    if project is None:
        SqlStoreProcedures(session).create_project_from_template(
            TemplateSnapshot.model_validate(DEFAULT_TEMPLATE),
            ProjectFields(name=DEFAULT_PROJECT_NAME, description="Seeded demo project."),
            SYSTEM_ACTOR,
        )
    session.commit()

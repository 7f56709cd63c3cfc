"""Error taxonomy shared by the lifecycle, assignment, progression and query services.

Every error carries the name of the operation that raised it and the key
identifiers (task, project, crew) involved, so callers and logs can report
failures without re-deriving context.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session


class CrewTrackError(Exception):
    code = "CREWTRACK_ERROR"

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.operation = operation
        self.context: dict[str, Any] = dict(context or {})
        super().__init__(message)

    def __str__(self) -> str:
        if self.operation is None:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in sorted(self.context.items()))
        suffix = f" ({details})" if details else ""
        return f"{self.operation}: {self.message}{suffix}"


class ValidationError(CrewTrackError, ValueError):
    code = "VALIDATION_ERROR"


class NotFoundError(CrewTrackError, LookupError):
    code = "NOT_FOUND"


class InvariantViolation(CrewTrackError):
    """Business-rule rejection. Never retried automatically."""

    code = "INVARIANT_VIOLATION"


class LastAssigneeViolation(InvariantViolation):
    code = "LAST_ASSIGNEE_VIOLATION"


class NoAvailableRole(InvariantViolation):
    code = "NO_AVAILABLE_ROLE"


class NoAnchorTask(InvariantViolation):
    code = "NO_ANCHOR_TASK"


class RoleCoverageIncomplete(InvariantViolation):
    code = "ROLE_COVERAGE_INCOMPLETE"


class PhaseIncomplete(InvariantViolation):
    code = "PHASE_INCOMPLETE"


class ConflictError(CrewTrackError):
    """Duplicate row or failed update precondition; retry after re-reading state."""

    code = "CONFLICT"


class PersistenceFailure(CrewTrackError):
    code = "PERSISTENCE_FAILURE"

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        context: Mapping[str, Any] | None = None,
        store_message: str | None = None,
    ) -> None:
        super().__init__(message, operation=operation, context=context)
        self.store_message = store_message


class TaskLoadFailure(CrewTrackError):
    code = "TASK_LOAD_FAILURE"


class PartialFailure(CrewTrackError):
    """An earlier step committed and a later one failed; nothing was rolled back."""

    code = "PARTIAL_FAILURE"

    def __init__(
        self,
        message: str,
        *,
        committed: Any,
        cause: Exception,
        operation: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, operation=operation, context=context)
        self.committed = committed
        self.cause = cause


@contextmanager
def store_errors(session: Session, operation: str, **context: Any) -> Iterator[None]:
    """Roll back and wrap SQLAlchemy faults with the operation name and ids."""
    try:
        yield
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError(
            "store rejected a duplicate or conflicting row",
            operation=operation,
            context=context,
        ) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceFailure(
            str(exc.orig) if getattr(exc, "orig", None) is not None else str(exc),
            operation=operation,
            context=context,
            store_message=str(exc),
        ) from exc

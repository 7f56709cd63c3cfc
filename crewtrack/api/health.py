from fastapi import APIRouter, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from crewtrack.api.errors import ApiException
from crewtrack.api.schemas import HealthzResponse, ReadinessChecks, ReadyzResponse
from crewtrack.core.config import get_settings
from crewtrack.core.logging import get_logger
from crewtrack.db.engine import get_engine

router = APIRouter()
logger = get_logger("crewtrack.api.health")


@router.get("/healthz", response_model=HealthzResponse)
def healthz() -> HealthzResponse:
    settings = get_settings()
    return HealthzResponse(status="ok", service=settings.app_name, env=settings.app_env)


@router.get("/readyz", response_model=ReadyzResponse)
def readyz() -> ReadyzResponse:
    _ = get_settings()
    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("readyz.database_unavailable", error=str(exc))
        raise ApiException(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "DATABASE_UNAVAILABLE",
            "Database is not reachable.",
        ) from exc
    return ReadyzResponse(
        status="ready",
        checks=ReadinessChecks(configuration="ok", database="ok"),
    )

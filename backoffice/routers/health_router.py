import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.config import settings
from backoffice.database.session import get_db
from backoffice.schemas.health import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: Session = Depends(get_db)) -> HealthCheckResponse:
    """Health check endpoint."""

    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database query failed: {e}")
        return HealthCheckResponse(
            status="degraded",
            environment=settings.ENVIRONMENT,
            database=False,
            error="database unavailable",
        )
    return HealthCheckResponse(environment=settings.ENVIRONMENT)

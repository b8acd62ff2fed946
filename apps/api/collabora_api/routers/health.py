"""Health check endpoints."""

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from collabora_api import __version__
from collabora_api.db.session import get_db
from collabora_api.schemas import HealthResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def check_database(db: Session) -> str:
    """Check database connectivity.

    Returns:
        str: "up" if healthy, error message otherwise
    """
    try:
        db.execute(text("SELECT 1"))
        return "up"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return f"down: {str(e)[:50]}"


def check_session_store(request: Request) -> str:
    """Check the session store (PING for Redis)."""
    try:
        request.app.state.session_store.ping()
        return "up"
    except Exception as e:
        logger.error(f"Session store health check failed: {e}")
        return f"down: {str(e)[:50]}"


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, db: Session = Depends(get_db)) -> HealthResponse:
    """
    Health check endpoint.

    Always returns 200 OK (use /readyz for dependency checks).
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        services={
            "api": "up",
            "database": check_database(db),
            "session_store": check_session_store(request),
        },
    )


@router.get("/readyz", response_model=HealthResponse)
async def readiness_check(request: Request, response: Response, db: Session = Depends(get_db)) -> HealthResponse:
    """Readiness check: 503 if any dependency is down."""
    services = {
        "api": "up",
        "database": check_database(db),
        "session_store": check_session_store(request),
    }
    any_down = any("down" in svc_status for svc_status in services.values())
    if any_down:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", version=__version__, services=services)
    return HealthResponse(status="ready", version=__version__, services=services)

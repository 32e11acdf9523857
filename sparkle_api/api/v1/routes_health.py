# File: sparkle_api/api/v1/routes_health.py

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from sparkle_api.db.utils import health_check
from sparkle_api.schemas.common import HealthStatus

router = APIRouter()


@router.get("/db", response_model=HealthStatus, summary="Database health")
def database_health():
    """
    Run ``SELECT 1`` against the primary database and report the latency.

    Responds 503 when the database is unreachable.
    """
    result = health_check()
    if result.status != "healthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=result.model_dump(),
        )
    return result

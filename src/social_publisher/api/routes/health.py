"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel
from sqlalchemy import text

from social_publisher.config import settings
from social_publisher.db.session import engine
from social_publisher.domain.enums import Platform
from social_publisher.logging import get_logger

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    components: dict[str, bool] | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    database: bool
    redis: bool


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Basic health check endpoint that verifies the API is running.",
)
async def health_check() -> HealthResponse:
    """Basic health check.

    Components report which platforms have environment-level client
    credentials; persisted admin credentials are not consulted here.
    """
    from social_publisher import __version__

    components = {
        platform.value: bool(
            getattr(settings, f"{platform.value}_client_id")
            and getattr(settings, f"{platform.value}_client_secret")
        )
        for platform in Platform
    }
    components["simulation"] = settings.publish_simulation_enabled

    return HealthResponse(status="healthy", version=__version__, components=components)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Verifies the database and the Celery broker are reachable.",
)
async def readiness_check() -> ReadinessResponse:
    database_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            database_ok = True
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))

    redis_ok = False
    try:
        import redis

        r = redis.from_url(settings.redis_url)
        r.ping()
        redis_ok = True
    except Exception as e:
        logger.error("redis_health_check_failed", error=str(e))

    return ReadinessResponse(
        ready=database_ok and redis_ok,
        database=database_ok,
        redis=redis_ok,
    )


@router.get(
    "/health/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Simple liveness probe for Kubernetes.",
)
async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness probe - is the process alive?"""
    return {"status": "alive"}

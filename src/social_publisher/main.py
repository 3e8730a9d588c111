"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from social_publisher import __version__
from social_publisher.api.routes import accounts, admin, health, oauth, publish, schedule
from social_publisher.config import settings
from social_publisher.db.session import get_session_context
from social_publisher.domain.errors import PublishError
from social_publisher.logging import get_logger, setup_logging
from social_publisher.services.credentials import bootstrap_app_settings

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("application_starting", version=__version__)

    # Startup: make sure the credentials row exists
    try:
        with get_session_context() as session:
            bootstrap_app_settings(session)
        logger.info("database_connected")
    except SQLAlchemyError as e:
        logger.error("database_connection_failed", error=str(e))
        # Don't raise - let health checks report the issue

    yield

    logger.info("application_shutting_down")


app = FastAPI(
    title="Social Publisher",
    description="Connect social accounts over OAuth and publish or schedule videos to them",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.app_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PublishError)
async def publish_error_handler(request: Request, exc: PublishError) -> JSONResponse:
    logger.warning(
        "publish_error_response",
        path=request.url.path,
        kind=exc.kind.value,
        status_code=exc.status_code,
        post_id=exc.metadata.get("postId"),
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Register routers
app.include_router(health.router)
app.include_router(oauth.router, prefix="/api/v1")
app.include_router(accounts.router, prefix="/api/v1")
app.include_router(publish.router, prefix="/api/v1")
app.include_router(schedule.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    return {
        "name": "Social Publisher",
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "social_publisher.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )

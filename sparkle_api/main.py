# File: sparkle_api/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sparkle_api.api.v1.api import api_router, health_api_router
from sparkle_api.core.config import features, get_public_url, settings
from sparkle_api.core.exception_handlers import setup_exception_handlers
from sparkle_api.core.logging_config import get_logger, setup_logging
from sparkle_api.core.redis import close_redis, get_redis
from sparkle_api.db.init_db import init_db
from sparkle_api.db.utils import disconnect

setup_logging()
logger = get_logger(__name__)

API_V1_PREFIX = "/api/v1"
MAINTENANCE_EXEMPT_PATHS = ("/healthz", f"{API_V1_PREFIX}/health")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s (%s) at %s", settings.app_name, settings.environment, get_public_url())
    init_db()
    get_redis()

    yield

    logger.info("Shutting down %s", settings.app_name)
    close_redis()
    disconnect()


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version or "0.1.0",
        openapi_url=f"{API_V1_PREFIX}/openapi.json",
        docs_url=f"{API_V1_PREFIX}/docs",
        lifespan=lifespan,
    )

    # ---------- MAINTENANCE MODE ----------
    @app.middleware("http")
    async def maintenance_mode(request: Request, call_next):
        if features.maintenance() and not request.url.path.startswith(MAINTENANCE_EXEMPT_PATHS):
            return JSONResponse(
                status_code=503,
                content={"detail": "Service is under maintenance", "code": "MAINTENANCE"},
            )
        return await call_next(request)

    # ---------- CORS ----------
    # added last so it wraps every other middleware, including maintenance 503s
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    # ---------- ROUTERS ----------
    @app.get("/healthz", tags=["health"])
    def healthz():
        return {"status": "ok"}

    app.include_router(api_router, prefix=API_V1_PREFIX)
    app.include_router(health_api_router, prefix=API_V1_PREFIX)

    return app


app = create_application()

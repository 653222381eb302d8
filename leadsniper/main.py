import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

try:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
except ModuleNotFoundError:  # Sentry optional in local/test envs
    sentry_sdk = None

from leadsniper.api.errors import register_exception_handlers
from leadsniper.api.routes import health, leads, outreach, research
from leadsniper.config import settings
from leadsniper.observability.metrics import metrics

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _init_sentry() -> bool:
    if sentry_sdk is None or not settings.sentry_dsn:
        return False
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[FastApiIntegration(), LoggingIntegration(level=logging.INFO)],
        traces_sample_rate=0.1,
        environment=settings.environment,
    )
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("app.startup", extra={"app": settings.app_name, "version": settings.app_version})
    if _init_sentry():
        logger.info("app.sentry_initialized")
    yield
    logger.info("app.shutdown")


def create_app() -> FastAPI:
    """Assemble the API: middleware, error handlers and routers."""
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Lead prospecting, enrichment and outreach service",
        lifespan=lifespan,
        debug=settings.debug,
    )

    if settings.cors_origins:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @application.middleware("http")
    async def log_requests(request: Request, call_next):
        with metrics.timed("http.request.latency_ms", tags={"method": request.method}) as tags:
            response = await call_next(request)
            tags["status"] = response.status_code
        logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
        return response

    register_exception_handlers(application)

    application.include_router(health.router, prefix="/health", tags=["health"])
    application.include_router(research.router, prefix="/api", tags=["research"])
    application.include_router(leads.router, prefix="/api", tags=["leads"])
    application.include_router(outreach.router, prefix="/api", tags=["outreach"])

    @application.get("/")
    async def root():
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "environment": settings.environment,
        }

    return application


app = create_app()

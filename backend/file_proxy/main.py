"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from file_proxy import __version__
from file_proxy.api import files
from file_proxy.api.errors import register_exception_handlers
from file_proxy.config import get_settings
from file_proxy.core.credentials import close_token_provider, get_token_provider
from file_proxy.core.downstream import create_http_client
from file_proxy.core.logging import configure_logging, get_logger
from file_proxy.middleware.correlation import RequestIdMiddleware
from file_proxy.middleware.timing import TimingMiddleware

settings = get_settings()

configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug,
        credential_strategy=(
            "managed_identity" if settings.use_managed_identity else "client_secret"
        ),
    )

    if not settings.dataverse_url or not settings.record_entity_set:
        logger.warning(
            "dataverse_not_configured",
            message="Downloads will fail. Set DATAVERSE_URL and RECORD_ENTITY_SET.",
        )

    # Credential strategy is fixed for the life of the process
    if settings.use_managed_identity or settings.is_client_secret_configured:
        get_token_provider()
    else:
        logger.warning(
            "credentials_not_configured",
            message="Downloads will fail. Set USE_MANAGED_IDENTITY=true or "
            "TENANT_ID, CLIENT_ID and CLIENT_SECRET.",
        )

    app.state.http_client = create_http_client(settings.downstream_timeout_seconds)

    yield

    await app.state.http_client.aclose()
    await close_token_provider()

    logger.info("application_shutdown")


app = FastAPI(
    title="SharePoint File Proxy",
    description=(
        "Streams SharePoint and OneDrive files to callers who can read the "
        "business record linked to the file in Dataverse."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

register_exception_handlers(app)

# The correlation id wraps timing so timing events carry it
app.add_middleware(TimingMiddleware)
app.add_middleware(RequestIdMiddleware)

app.include_router(files.router, prefix="/api")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}

"""Main FastAPI application."""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from jira_integration.core.config import get_settings
from jira_integration.core.database import database
from jira_integration.api import health, integrations, links, webhooks
from jira_integration.api.dependencies import build_webhook_processor
from jira_integration.integrations.errors import ErrorCode, IntegrationError
from jira_integration.utils.crypto import CredentialDecryptionError
from jira_integration.utils.logging import setup_logging
from jira_integration.utils.rate_limiter import RateLimiter

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

# Get settings
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info(f"Starting up {settings.service_name} ({settings.environment}) on port {settings.port}")
    await database.connect()
    await database.ensure_indexes()

    rate_limiter = None
    if settings.rate_limit_enabled:
        rate_limiter = RateLimiter(
            redis_url=settings.redis_url,
            prefix="jira_integration",
            limit=settings.rate_limit_default,
            window=settings.rate_limit_window,
        )

    processor = build_webhook_processor(database, rate_limiter)
    app.state.webhook_processor = processor
    await processor.start()

    yield

    # Shutdown
    logger.info("Shutting down Jira integration service...")
    await processor.stop()
    if rate_limiter:
        await rate_limiter.close()
    await database.disconnect()


# Create FastAPI app
app = FastAPI(
    title="Qualix Jira Integration Service",
    description="Jira connection validation, issue linking and sync, webhook ingestion",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IntegrationError)
async def integration_error_handler(request: Request, exc: IntegrationError):
    """Render integration errors as ``{"success": false, "error": {...}}``."""
    error = exc.to_dict()
    if exc.details is not None:
        error["details"] = exc.details
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code.value}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({"success": False, "error": error}),
    )


@app.exception_handler(CredentialDecryptionError)
async def credential_error_handler(request: Request, exc: CredentialDecryptionError):
    logger.error(f"Stored Jira credentials cannot be decrypted: {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.AUTH_CONFIG_ERROR.value,
                "message": "Stored Jira credentials cannot be decrypted, set up the integration again",
            },
        },
    )


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(
    integrations.router,
    prefix="/api/v1/jira",
    tags=["jira"]
)
app.include_router(
    links.router,
    prefix="/api/v1/jira",
    tags=["jira-links"]
)
app.include_router(
    webhooks.router,
    prefix="/api/v1/webhooks",
    tags=["webhooks"]
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "jira_integration.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
    )

"""Health check endpoints."""

from fastapi import APIRouter, Request
from datetime import datetime, timezone
import redis.asyncio as redis

from jira_integration.core.config import get_settings
from jira_integration.core.database import database

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check():
    """Basic health check."""
    return {
        "status": "healthy",
        "service": settings.service_name,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request):
    """Detailed health check with database, Redis and processor state."""
    health_status = {
        "status": "healthy",
        "service": settings.service_name,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": {"status": "unknown"},
            "redis": {"status": "unknown"},
            "webhook_processor": {"status": "unknown"},
        }
    }

    # Check MongoDB
    try:
        if database.client:
            await database.client.admin.command("ping")
            health_status["checks"]["database"]["status"] = "healthy"
        else:
            health_status["checks"]["database"]["status"] = "disconnected"
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["checks"]["database"]["status"] = "unhealthy"
        health_status["checks"]["database"]["error"] = str(e)
        health_status["status"] = "unhealthy"

    # Redis only backs the webhook rate limiter
    if settings.rate_limit_enabled:
        client = redis.from_url(settings.redis_url)
        try:
            await client.ping()
            health_status["checks"]["redis"]["status"] = "healthy"
        except Exception as e:
            health_status["checks"]["redis"]["status"] = "unhealthy"
            health_status["checks"]["redis"]["error"] = str(e)
            if health_status["status"] == "healthy":
                health_status["status"] = "degraded"
        finally:
            await client.aclose()
    else:
        health_status["checks"]["redis"]["status"] = "disabled"

    processor = getattr(request.app.state, "webhook_processor", None)
    if processor is not None and processor.running:
        health_status["checks"]["webhook_processor"]["status"] = "healthy"
        health_status["checks"]["webhook_processor"]["queue_size"] = processor.queue.qsize()
    else:
        health_status["checks"]["webhook_processor"]["status"] = "stopped"
        if health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    return health_status

"""API dependencies."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Dict, Any, Optional
import httpx
import logging

from jira_integration.core.config import get_settings
from jira_integration.core.database import Database, database
from jira_integration.repositories import (
    MongoIntegrationRepository,
    MongoLinkRepository,
    MongoProjectMappingRepository,
    MongoWebhookEventRepository,
    build_entity_stores,
)
from jira_integration.services import (
    IntegrationService,
    LinkService,
    WebhookProcessor,
    WebhookService,
)
from jira_integration.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)
settings = get_settings()

# Security
security = HTTPBearer()


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Dict[str, Any]:
    """Get current user from auth service."""
    token = credentials.credentials

    try:
        # Verify token with auth service
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{settings.auth_service_url}/api/v1/users/me",
                headers={"Authorization": f"Bearer {token}"}
            )

            if response.status_code != 200:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid authentication credentials",
                    headers={"WWW-Authenticate": "Bearer"},
                )

            return response.json()
    except httpx.RequestError as e:
        logger.error(f"Auth service request failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable"
        )


# Builders shared with the application lifespan

def build_integration_service(db: Database) -> IntegrationService:
    return IntegrationService(
        MongoIntegrationRepository(db),
        MongoProjectMappingRepository(db),
    )


def build_link_service(db: Database, integration_service: IntegrationService) -> LinkService:
    return LinkService(
        MongoIntegrationRepository(db),
        MongoLinkRepository(db),
        build_entity_stores(db),
        integration_service.build_client,
    )


def build_webhook_processor(db: Database, rate_limiter: Optional[RateLimiter] = None) -> WebhookProcessor:
    integration_service = build_integration_service(db)
    return WebhookProcessor(
        MongoWebhookEventRepository(db),
        build_link_service(db, integration_service),
        workers=settings.webhook_workers,
        queue_size=settings.webhook_queue_size,
        failure_history=settings.webhook_failure_history,
        recovery_batch=settings.webhook_recovery_batch,
        rate_limiter=rate_limiter,
    )


# Service dependencies

def get_integration_service() -> IntegrationService:
    """Get integration service instance."""
    return build_integration_service(database)


def get_link_service(
    integration_service: IntegrationService = Depends(get_integration_service),
) -> LinkService:
    """Get link service instance."""
    return build_link_service(database, integration_service)


def get_webhook_processor(request: Request) -> WebhookProcessor:
    """The processor started by the application lifespan."""
    processor = getattr(request.app.state, "webhook_processor", None)
    if processor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook processor not running"
        )
    return processor


def get_webhook_service(
    integration_service: IntegrationService = Depends(get_integration_service),
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> WebhookService:
    """Get webhook service instance."""
    return WebhookService(integration_service, MongoWebhookEventRepository(database), processor)

"""Services module for the Jira integration."""

from .connection_validator import ConnectionValidator
from .integration_service import IntegrationService
from .link_service import LinkService
from .webhook_service import WebhookProcessor, WebhookService, compute_signature, verify_signature

__all__ = [
    "ConnectionValidator",
    "IntegrationService",
    "LinkService",
    "WebhookProcessor",
    "WebhookService",
    "compute_signature",
    "verify_signature",
]

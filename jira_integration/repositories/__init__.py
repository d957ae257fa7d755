"""Persistence for integrations, links and webhook events."""

from .base import (
    IntegrationRepository,
    LinkRepository,
    ProjectMappingRepository,
    WebhookEventRepository,
)
from .entities import EntitySnapshot, EntityStores, LocalEntityStore, MongoEntityStore, build_entity_stores
from .mongo import (
    MongoIntegrationRepository,
    MongoLinkRepository,
    MongoProjectMappingRepository,
    MongoWebhookEventRepository,
)

__all__ = [
    "IntegrationRepository",
    "LinkRepository",
    "ProjectMappingRepository",
    "WebhookEventRepository",
    "EntitySnapshot",
    "EntityStores",
    "LocalEntityStore",
    "MongoEntityStore",
    "build_entity_stores",
    "MongoIntegrationRepository",
    "MongoLinkRepository",
    "MongoProjectMappingRepository",
    "MongoWebhookEventRepository",
]

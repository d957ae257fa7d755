"""Storage interfaces for integration records."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from jira_integration.models import (
    EntityType,
    ExternalProjectMapping,
    Integration,
    Link,
    LinkKey,
    WebhookEvent,
)


class IntegrationRepository(ABC):
    """One integration per test project."""

    @abstractmethod
    async def get(self, integration_id: str) -> Optional[Integration]:
        pass

    @abstractmethod
    async def get_by_project(self, project_id: str) -> Optional[Integration]:
        pass

    @abstractmethod
    async def save(self, integration: Integration) -> Integration:
        """Insert or replace the integration of ``integration.project_id``.

        An existing record keeps its id and ``created_at``.
        """

    @abstractmethod
    async def update_fields(self, integration_id: str, fields: Dict[str, Any]) -> Optional[Integration]:
        pass


class ProjectMappingRepository(ABC):

    @abstractmethod
    async def save(self, mapping: ExternalProjectMapping) -> ExternalProjectMapping:
        """Insert or replace the mapping of ``(integration_id, project_key)``."""

    @abstractmethod
    async def list_by_integration(self, integration_id: str) -> List[ExternalProjectMapping]:
        pass


class LinkRepository(ABC):
    """Links keyed by ``(issue_key, entity_type, entity_id)``."""

    @abstractmethod
    async def upsert(
        self,
        key: LinkKey,
        insert_fields: Dict[str, Any],
        update_fields: Dict[str, Any],
    ) -> Link:
        """Atomically create or update the link with natural key ``key``.

        ``insert_fields`` are only written when the row is created,
        ``update_fields`` are written in both cases.
        """

    @abstractmethod
    async def find_by_entity(self, entity_type: EntityType, entity_id: str) -> Optional[Link]:
        """Most recently updated link of an entity."""

    @abstractmethod
    async def list_by_entity(self, entity_type: EntityType, entity_id: str) -> List[Link]:
        pass

    @abstractmethod
    async def find_by_issue_key(self, issue_key: str) -> Optional[Link]:
        """Most recently updated link of an issue."""

    @abstractmethod
    async def update_fields(self, link_id: str, fields: Dict[str, Any]) -> Optional[Link]:
        pass

    @abstractmethod
    async def delete_by_key(self, key: LinkKey) -> int:
        pass

    @abstractmethod
    async def delete_by_issue(self, integration_id: str, issue_key: str) -> int:
        pass


class WebhookEventRepository(ABC):
    """Append-only store of inbound deliveries."""

    @abstractmethod
    async def create(self, event: WebhookEvent) -> WebhookEvent:
        pass

    @abstractmethod
    async def get(self, event_id: str) -> Optional[WebhookEvent]:
        pass

    @abstractmethod
    async def list(
        self,
        integration_id: Optional[str] = None,
        processed: Optional[bool] = None,
        limit: int = 50,
    ) -> List[WebhookEvent]:
        """Newest first."""

    @abstractmethod
    async def list_unprocessed(self, integration_id: Optional[str] = None, limit: int = 500) -> List[WebhookEvent]:
        """Oldest first."""

    @abstractmethod
    async def mark_processed(
        self,
        event: WebhookEvent,
        processed_at: datetime,
        error: Optional[str] = None,
    ) -> int:
        """Mark ``event`` and the earlier unprocessed events of its issue processed.

        Rows received after ``event`` are left for their own run.
        """

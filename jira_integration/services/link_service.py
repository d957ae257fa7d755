"""Links between local entities and Jira issues, and their synchronization."""

from typing import Callable, List, Optional
import logging

from jira_integration.integrations.errors import InactiveIntegrationError, NotFoundError
from jira_integration.integrations.jira import JiraClient, JiraIssue
from jira_integration.models import (
    EntityType,
    Integration,
    Link,
    LinkKey,
    SyncDirection,
    SyncOutcome,
    SyncStatus,
)
from jira_integration.models.base import utcnow
from jira_integration.repositories import (
    EntitySnapshot,
    EntityStores,
    IntegrationRepository,
    LinkRepository,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Integration], JiraClient]


class LinkService:
    """Link registry and sync engine.

    Link state moves PENDING -> SYNCED, any failed sync attempt -> FAILED,
    and back to SYNCED on the next success. Sync calls raise on failure
    after persisting FAILED.
    """

    def __init__(
        self,
        integrations: IntegrationRepository,
        links: LinkRepository,
        entity_stores: EntityStores,
        client_factory: ClientFactory,
    ):
        self.integrations = integrations
        self.links = links
        self.entity_stores = entity_stores
        self.client_factory = client_factory

    async def _active_integration(self, integration_id: str) -> Integration:
        integration = await self.integrations.get(integration_id)
        if not integration:
            raise NotFoundError("Jira integration not found")
        if not integration.is_active:
            raise InactiveIntegrationError("Jira integration is inactive")
        return integration

    async def _fetch_issue(self, integration: Integration, issue_key: str) -> JiraIssue:
        async with self.client_factory(integration) as client:
            return await client.get_issue(issue_key)

    async def _touch_integration(self, integration: Integration) -> None:
        await self.integrations.update_fields(integration.id, {"last_sync_at": utcnow()})

    # Registry

    async def link(
        self,
        integration_id: str,
        project_mapping_id: Optional[str],
        issue_key: str,
        entity_type: EntityType,
        entity_id: str,
        direction: Optional[SyncDirection] = None,
    ) -> Link:
        """Link an entity to a Jira issue, or refresh an existing link.

        A new link starts SYNCED with the requested direction; an existing
        one only gets its cached summary, status and timestamp refreshed.
        """
        integration = await self._active_integration(integration_id)
        issue = await self._fetch_issue(integration, issue_key)
        now = utcnow()

        link = await self.links.upsert(
            LinkKey(issue_key, entity_type, entity_id),
            insert_fields={
                "integration_id": integration.id,
                "project_mapping_id": project_mapping_id,
                "issue_id": issue.id,
                "issue_type": issue.issue_type,
                "sync_status": SyncStatus.SYNCED,
                "sync_direction": direction or SyncDirection.BIDIRECTIONAL,
            },
            update_fields={
                "issue_summary": issue.summary,
                "issue_status": issue.status,
                "last_synced_at": now,
            },
        )
        logger.info(f"Linked {entity_type.value} {entity_id} to {issue_key}")
        return link

    async def unlink(self, issue_key: str, entity_type: EntityType, entity_id: str) -> bool:
        """Remove a link. Removing a missing link is not an error."""
        deleted = await self.links.delete_by_key(LinkKey(issue_key, entity_type, entity_id))
        if deleted:
            logger.info(f"Unlinked {entity_type.value} {entity_id} from {issue_key}")
        return bool(deleted)

    async def get_entity_links(self, entity_type: EntityType, entity_id: str) -> List[Link]:
        return await self.links.list_by_entity(entity_type, entity_id)

    async def set_direction(self, link_id: str, direction: SyncDirection) -> Link:
        link = await self.links.update_fields(link_id, {"sync_direction": direction})
        if not link:
            raise NotFoundError("Jira link not found")
        return link

    async def remove_issue_links(self, integration_id: str, issue_key: str) -> int:
        """Drop every link of a deleted Jira issue."""
        deleted = await self.links.delete_by_issue(integration_id, issue_key)
        logger.info(f"Removed {deleted} link(s) for deleted issue {issue_key}")
        return deleted

    # Sync

    async def sync_entity_to_external(self, entity_type: EntityType, entity_id: str) -> SyncOutcome:
        """Push the local entity's title and description to its linked issue."""
        link = await self.links.find_by_entity(entity_type, entity_id)
        if not link:
            logger.debug(f"No Jira link for {entity_type.value} {entity_id}, outbound sync skipped")
            return SyncOutcome.SKIPPED_NO_LINK
        if not link.sync_direction.pushes_outbound:
            logger.debug(
                f"Link {link.id} is {link.sync_direction.value}, outbound sync skipped"
            )
            return SyncOutcome.SKIPPED_BY_DIRECTION

        try:
            integration = await self._active_integration(link.integration_id)
            snapshot = await self._entity_store(entity_type).get(entity_id)
            if snapshot is None:
                raise NotFoundError(f"{entity_type.value.title()} {entity_id} not found")

            async with self.client_factory(integration) as client:
                await client.update_issue(
                    link.issue_key,
                    summary=snapshot.title,
                    description=snapshot.description,
                )
        except Exception as e:
            await self.links.update_fields(link.id, {"sync_status": SyncStatus.FAILED})
            logger.error(f"Outbound sync of {entity_type.value} {entity_id} to {link.issue_key} failed: {e}")
            raise

        await self.links.update_fields(
            link.id,
            {"sync_status": SyncStatus.SYNCED, "last_synced_at": utcnow()},
        )
        await self._touch_integration(integration)
        logger.info(f"Synced {entity_type.value} {entity_id} to {link.issue_key}")
        return SyncOutcome.SYNCED

    async def sync_from_external(self, issue_key: str) -> SyncOutcome:
        """Pull a Jira issue into its link and, for bidirectional links, the local entity."""
        link = await self.links.find_by_issue_key(issue_key)
        if not link:
            logger.debug(f"No link for Jira issue {issue_key}, inbound sync skipped")
            return SyncOutcome.SKIPPED_NO_LINK
        if not link.sync_direction.pulls_inbound:
            logger.debug(f"Link {link.id} is {link.sync_direction.value}, inbound sync skipped")
            return SyncOutcome.SKIPPED_BY_DIRECTION

        try:
            integration = await self._active_integration(link.integration_id)
            issue = await self._fetch_issue(integration, issue_key)

            await self.links.update_fields(
                link.id,
                {
                    "issue_summary": issue.summary,
                    "issue_status": issue.status,
                    "issue_type": issue.issue_type or link.issue_type,
                    "sync_status": SyncStatus.SYNCED,
                    "last_synced_at": utcnow(),
                },
            )

            # Entity content only follows Jira on fully bidirectional links
            if link.sync_direction == SyncDirection.BIDIRECTIONAL:
                await self._apply_to_entity(link, issue)
        except Exception as e:
            await self.links.update_fields(link.id, {"sync_status": SyncStatus.FAILED})
            logger.error(f"Inbound sync of {issue_key} failed: {e}")
            raise

        await self._touch_integration(integration)
        logger.info(f"Synced {issue_key} from Jira")
        return SyncOutcome.SYNCED

    async def _apply_to_entity(self, link: Link, issue: JiraIssue) -> None:
        store = self._entity_store(link.entity_type)
        current = await store.get(link.entity_id)
        if current is None:
            logger.warning(
                f"{link.entity_type.value} {link.entity_id} linked to {link.issue_key} no longer exists"
            )
            return

        incoming = EntitySnapshot(title=issue.summary, description=issue.description or None)
        if (current.title, current.description or "") == (incoming.title, incoming.description or ""):
            return
        await store.update(link.entity_id, incoming)

    def _entity_store(self, entity_type: EntityType):
        return self.entity_stores[entity_type]

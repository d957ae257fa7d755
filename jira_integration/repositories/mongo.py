"""MongoDB implementations of the storage interfaces."""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
from pymongo import DESCENDING, ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from jira_integration.core.database import Database
from jira_integration.models import (
    EntityType,
    ExternalProjectMapping,
    Integration,
    Link,
    LinkKey,
    WebhookEvent,
)
from jira_integration.models.base import plain_values, new_id, utcnow
from jira_integration.repositories.base import (
    IntegrationRepository,
    LinkRepository,
    ProjectMappingRepository,
    WebhookEventRepository,
)

logger = logging.getLogger(__name__)


class MongoIntegrationRepository(IntegrationRepository):

    def __init__(self, db: Database):
        self.db = db

    @property
    def collection(self):
        return self.db.get_collection("integrations")

    async def get(self, integration_id: str) -> Optional[Integration]:
        doc = await self.collection.find_one({"_id": integration_id})
        return Integration(**doc) if doc else None

    async def get_by_project(self, project_id: str) -> Optional[Integration]:
        doc = await self.collection.find_one({"project_id": project_id})
        return Integration(**doc) if doc else None

    async def save(self, integration: Integration) -> Integration:
        doc = integration.to_document()
        insert_only = {"_id": doc.pop("_id"), "created_at": doc.pop("created_at")}

        result = await self.collection.find_one_and_update(
            {"project_id": integration.project_id},
            {"$set": doc, "$setOnInsert": insert_only},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        logger.info(f"Saved Jira integration {result['_id']} for project {integration.project_id}")
        return Integration(**result)

    async def update_fields(self, integration_id: str, fields: Dict[str, Any]) -> Optional[Integration]:
        result = await self.collection.find_one_and_update(
            {"_id": integration_id},
            {"$set": plain_values(fields)},
            return_document=ReturnDocument.AFTER,
        )
        return Integration(**result) if result else None


class MongoProjectMappingRepository(ProjectMappingRepository):

    def __init__(self, db: Database):
        self.db = db

    @property
    def collection(self):
        return self.db.get_collection("project_mappings")

    async def save(self, mapping: ExternalProjectMapping) -> ExternalProjectMapping:
        doc = mapping.to_document()
        insert_only = {"_id": doc.pop("_id"), "created_at": doc.pop("created_at")}

        result = await self.collection.find_one_and_update(
            {"integration_id": mapping.integration_id, "project_key": mapping.project_key},
            {"$set": doc, "$setOnInsert": insert_only},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return ExternalProjectMapping(**result)

    async def list_by_integration(self, integration_id: str) -> List[ExternalProjectMapping]:
        cursor = self.collection.find({"integration_id": integration_id}).sort("project_key", ASCENDING)
        return [ExternalProjectMapping(**doc) async for doc in cursor]


class MongoLinkRepository(LinkRepository):

    def __init__(self, db: Database):
        self.db = db

    @property
    def collection(self):
        return self.db.get_collection("links")

    async def upsert(
        self,
        key: LinkKey,
        insert_fields: Dict[str, Any],
        update_fields: Dict[str, Any],
    ) -> Link:
        now = utcnow()
        update = {
            "$set": plain_values({**update_fields, "updated_at": now}),
            "$setOnInsert": plain_values({
                "_id": new_id(),
                "created_at": now,
                **key.as_filter(),
                **{k: v for k, v in insert_fields.items() if k not in update_fields},
            }),
        }

        # Two concurrent upserts on a fresh key can both try to insert; the
        # loser hits the unique index and its retry becomes an update.
        try:
            doc = await self._upsert_once(key, update)
        except DuplicateKeyError:
            logger.debug(f"Duplicate key on link upsert {key}, retrying as update")
            doc = await self._upsert_once(key, update)
        return Link(**doc)

    async def _upsert_once(self, key: LinkKey, update: Dict[str, Any]) -> Dict[str, Any]:
        return await self.collection.find_one_and_update(
            key.as_filter(),
            update,
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def find_by_entity(self, entity_type: EntityType, entity_id: str) -> Optional[Link]:
        doc = await self.collection.find_one(
            {"entity_type": entity_type.value, "entity_id": entity_id},
            sort=[("updated_at", DESCENDING)],
        )
        return Link(**doc) if doc else None

    async def list_by_entity(self, entity_type: EntityType, entity_id: str) -> List[Link]:
        cursor = self.collection.find(
            {"entity_type": entity_type.value, "entity_id": entity_id}
        ).sort("created_at", ASCENDING)
        return [Link(**doc) async for doc in cursor]

    async def find_by_issue_key(self, issue_key: str) -> Optional[Link]:
        doc = await self.collection.find_one(
            {"issue_key": issue_key},
            sort=[("updated_at", DESCENDING)],
        )
        return Link(**doc) if doc else None

    async def update_fields(self, link_id: str, fields: Dict[str, Any]) -> Optional[Link]:
        result = await self.collection.find_one_and_update(
            {"_id": link_id},
            {"$set": plain_values({**fields, "updated_at": utcnow()})},
            return_document=ReturnDocument.AFTER,
        )
        return Link(**result) if result else None

    async def delete_by_key(self, key: LinkKey) -> int:
        result = await self.collection.delete_one(key.as_filter())
        return result.deleted_count

    async def delete_by_issue(self, integration_id: str, issue_key: str) -> int:
        result = await self.collection.delete_many(
            {"integration_id": integration_id, "issue_key": issue_key}
        )
        return result.deleted_count


class MongoWebhookEventRepository(WebhookEventRepository):

    def __init__(self, db: Database):
        self.db = db

    @property
    def collection(self):
        return self.db.get_collection("webhook_events")

    async def create(self, event: WebhookEvent) -> WebhookEvent:
        await self.collection.insert_one(event.to_document())
        return event

    async def get(self, event_id: str) -> Optional[WebhookEvent]:
        doc = await self.collection.find_one({"_id": event_id})
        return WebhookEvent(**doc) if doc else None

    async def list(
        self,
        integration_id: Optional[str] = None,
        processed: Optional[bool] = None,
        limit: int = 50,
    ) -> List[WebhookEvent]:
        filters: Dict[str, Any] = {}
        if integration_id:
            filters["integration_id"] = integration_id
        if processed is not None:
            filters["processed"] = processed

        cursor = self.collection.find(filters).sort("received_at", DESCENDING).limit(limit)
        return [WebhookEvent(**doc) async for doc in cursor]

    async def list_unprocessed(self, integration_id: Optional[str] = None, limit: int = 500) -> List[WebhookEvent]:
        filters: Dict[str, Any] = {"processed": False}
        if integration_id:
            filters["integration_id"] = integration_id

        cursor = self.collection.find(filters).sort("received_at", ASCENDING).limit(limit)
        return [WebhookEvent(**doc) async for doc in cursor]

    async def mark_processed(
        self,
        event: WebhookEvent,
        processed_at: datetime,
        error: Optional[str] = None,
    ) -> int:
        result = await self.collection.update_many(
            {
                "integration_id": event.integration_id,
                "issue_key": event.issue_key,
                "processed": False,
                "$or": [{"_id": event.id}, {"received_at": {"$lte": event.received_at}}],
            },
            {"$set": {"processed": True, "processed_at": processed_at, "error": error}},
        )
        return result.modified_count

"""Access to the local test-management entities that links point at."""

from abc import ABC, abstractmethod
from typing import Dict, Optional
import logging
from pydantic import BaseModel

from jira_integration.core.database import Database
from jira_integration.models import EntityType
from jira_integration.models.base import utcnow

logger = logging.getLogger(__name__)


class EntitySnapshot(BaseModel):
    """The fields of a local entity mirrored to and from Jira."""
    title: str
    description: Optional[str] = None


class LocalEntityStore(ABC):
    """Read/write access to one kind of local entity."""

    @abstractmethod
    async def get(self, entity_id: str) -> Optional[EntitySnapshot]:
        pass

    @abstractmethod
    async def update(self, entity_id: str, snapshot: EntitySnapshot) -> None:
        pass


class MongoEntityStore(LocalEntityStore):
    """Entity store over a collection of the test-management database."""

    def __init__(self, db: Database, collection_name: str, title_field: str = "title"):
        self.db = db
        self.collection_name = collection_name
        self.title_field = title_field

    @property
    def collection(self):
        return self.db.get_collection(self.collection_name)

    async def get(self, entity_id: str) -> Optional[EntitySnapshot]:
        doc = await self.collection.find_one(
            {"_id": entity_id},
            {self.title_field: 1, "description": 1},
        )
        if not doc:
            return None
        return EntitySnapshot(
            title=doc.get(self.title_field) or "",
            description=doc.get("description"),
        )

    async def update(self, entity_id: str, snapshot: EntitySnapshot) -> None:
        await self.collection.update_one(
            {"_id": entity_id},
            {"$set": {
                self.title_field: snapshot.title,
                "description": snapshot.description,
                "updated_at": utcnow(),
            }},
        )
        logger.debug(f"Updated {self.collection_name}/{entity_id} from Jira")


EntityStores = Dict[EntityType, LocalEntityStore]


def build_entity_stores(db: Database) -> EntityStores:
    """Suites and plans carry a ``name``, cases and defects a ``title``."""
    return {
        EntityType.SUITE: MongoEntityStore(db, "test_suites", title_field="name"),
        EntityType.PLAN: MongoEntityStore(db, "test_plans", title_field="name"),
        EntityType.CASE: MongoEntityStore(db, "test_cases", title_field="title"),
        EntityType.DEFECT: MongoEntityStore(db, "defects", title_field="title"),
    }

"""Database connections and utilities."""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from typing import Optional
import logging

from jira_integration.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


# Collection names
COLLECTIONS = {
    "integrations": "jira_integrations",
    "project_mappings": "jira_project_mappings",
    "links": "jira_links",
    "webhook_events": "jira_webhook_events",
    # Owned by the test-management domain, read and written through LocalEntityStore
    "test_suites": "test_suites",
    "test_cases": "test_cases",
    "test_plans": "test_plans",
    "defects": "defects",
}


class Database:
    """Database connection manager."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self):
        """Connect to MongoDB."""
        try:
            self.client = AsyncIOMotorClient(settings.mongodb_url)
            self.db = self.client[settings.mongodb_db_name]

            # Test connection
            await self.client.admin.command("ping")
            logger.info("Connected to MongoDB")
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def disconnect(self):
        """Disconnect from MongoDB."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    def get_collection(self, name: str):
        """Get a collection by its logical name."""
        if self.db is None:
            raise RuntimeError("Database not connected")
        return self.db[COLLECTIONS.get(name, name)]

    async def ensure_indexes(self):
        """Create the indexes the integration records rely on."""
        integrations = self.get_collection("integrations")
        await integrations.create_index([("project_id", ASCENDING)], unique=True)

        mappings = self.get_collection("project_mappings")
        await mappings.create_index([("integration_id", ASCENDING)])

        # Natural key of a link
        links = self.get_collection("links")
        await links.create_index(
            [("issue_key", ASCENDING), ("entity_type", ASCENDING), ("entity_id", ASCENDING)],
            unique=True,
        )
        await links.create_index([("integration_id", ASCENDING), ("issue_key", ASCENDING)])
        await links.create_index([("entity_type", ASCENDING), ("entity_id", ASCENDING)])

        events = self.get_collection("webhook_events")
        await events.create_index(
            [("integration_id", ASCENDING), ("issue_key", ASCENDING), ("processed", ASCENDING)]
        )
        await events.create_index([("received_at", DESCENDING)])

        logger.info("MongoDB indexes ensured")


# Global database instance
database = Database()

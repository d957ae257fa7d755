"""Shared fixtures: in-memory repositories and a fake Jira client."""

import os

os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")
os.environ.setdefault("LOG_FORMAT", "text")

from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from jira_integration.integrations.errors import NotFoundError, TrackerAPIError
from jira_integration.integrations.jira import JiraIssue
from jira_integration.models import (
    AuthType,
    EntityType,
    ExternalProjectMapping,
    Integration,
    JiraType,
    Link,
    LinkKey,
    WebhookEvent,
)
from jira_integration.models.base import utcnow
from jira_integration.repositories import (
    EntitySnapshot,
    IntegrationRepository,
    LinkRepository,
    LocalEntityStore,
    ProjectMappingRepository,
    WebhookEventRepository,
)
from jira_integration.services import LinkService, WebhookProcessor


class InMemoryIntegrationRepository(IntegrationRepository):

    def __init__(self):
        self.rows: Dict[str, Integration] = {}

    async def get(self, integration_id: str) -> Optional[Integration]:
        return self.rows.get(integration_id)

    async def get_by_project(self, project_id: str) -> Optional[Integration]:
        return next((i for i in self.rows.values() if i.project_id == project_id), None)

    async def save(self, integration: Integration) -> Integration:
        existing = await self.get_by_project(integration.project_id)
        if existing:
            integration = integration.model_copy(
                update={"id": existing.id, "created_at": existing.created_at}
            )
        self.rows[integration.id] = integration
        return integration

    async def update_fields(self, integration_id: str, fields: Dict[str, Any]) -> Optional[Integration]:
        row = self.rows.get(integration_id)
        if not row:
            return None
        self.rows[integration_id] = row.model_copy(update=fields)
        return self.rows[integration_id]


class InMemoryProjectMappingRepository(ProjectMappingRepository):

    def __init__(self):
        self.rows: Dict[str, ExternalProjectMapping] = {}

    async def save(self, mapping: ExternalProjectMapping) -> ExternalProjectMapping:
        existing = next(
            (m for m in self.rows.values()
             if m.integration_id == mapping.integration_id and m.project_key == mapping.project_key),
            None,
        )
        if existing:
            mapping = mapping.model_copy(update={"id": existing.id, "created_at": existing.created_at})
        self.rows[mapping.id] = mapping
        return mapping

    async def list_by_integration(self, integration_id: str) -> List[ExternalProjectMapping]:
        return [m for m in self.rows.values() if m.integration_id == integration_id]


class InMemoryLinkRepository(LinkRepository):

    def __init__(self):
        self.rows: Dict[str, Link] = {}

    def _find(self, key: LinkKey) -> Optional[Link]:
        return next((link for link in self.rows.values() if link.key == key), None)

    async def upsert(self, key: LinkKey, insert_fields: Dict[str, Any], update_fields: Dict[str, Any]) -> Link:
        existing = self._find(key)
        if existing:
            link = existing.model_copy(update={**update_fields, "updated_at": utcnow()})
        else:
            link = Link(
                issue_key=key.issue_key,
                entity_type=key.entity_type,
                entity_id=key.entity_id,
                **{**insert_fields, **update_fields},
            )
        self.rows[link.id] = link
        return link

    async def find_by_entity(self, entity_type: EntityType, entity_id: str) -> Optional[Link]:
        links = await self.list_by_entity(entity_type, entity_id)
        return max(links, key=lambda link: link.updated_at) if links else None

    async def list_by_entity(self, entity_type: EntityType, entity_id: str) -> List[Link]:
        return [
            link for link in self.rows.values()
            if link.entity_type == entity_type and link.entity_id == entity_id
        ]

    async def find_by_issue_key(self, issue_key: str) -> Optional[Link]:
        links = [link for link in self.rows.values() if link.issue_key == issue_key]
        return max(links, key=lambda link: link.updated_at) if links else None

    async def update_fields(self, link_id: str, fields: Dict[str, Any]) -> Optional[Link]:
        row = self.rows.get(link_id)
        if not row:
            return None
        self.rows[link_id] = row.model_copy(update={**fields, "updated_at": utcnow()})
        return self.rows[link_id]

    async def delete_by_key(self, key: LinkKey) -> int:
        link = self._find(key)
        if not link:
            return 0
        del self.rows[link.id]
        return 1

    async def delete_by_issue(self, integration_id: str, issue_key: str) -> int:
        doomed = [
            link.id for link in self.rows.values()
            if link.integration_id == integration_id and link.issue_key == issue_key
        ]
        for link_id in doomed:
            del self.rows[link_id]
        return len(doomed)


class InMemoryWebhookEventRepository(WebhookEventRepository):

    def __init__(self):
        self.rows: Dict[str, WebhookEvent] = {}

    async def create(self, event: WebhookEvent) -> WebhookEvent:
        self.rows[event.id] = event
        return event

    async def get(self, event_id: str) -> Optional[WebhookEvent]:
        return self.rows.get(event_id)

    async def list(self, integration_id=None, processed=None, limit: int = 50) -> List[WebhookEvent]:
        events = [
            e for e in self.rows.values()
            if (integration_id is None or e.integration_id == integration_id)
            and (processed is None or e.processed == processed)
        ]
        return sorted(events, key=lambda e: e.received_at, reverse=True)[:limit]

    async def list_unprocessed(self, integration_id=None, limit: int = 500) -> List[WebhookEvent]:
        events = await self.list(integration_id, False, limit)
        return list(reversed(events))

    async def mark_processed(
        self,
        event: WebhookEvent,
        processed_at: datetime,
        error: Optional[str] = None,
    ) -> int:
        count = 0
        for event_id, row in list(self.rows.items()):
            if row.processed or (row.integration_id, row.issue_key) != (event.integration_id, event.issue_key):
                continue
            if event_id == event.id or row.received_at <= event.received_at:
                self.rows[event_id] = row.model_copy(
                    update={"processed": True, "processed_at": processed_at, "error": error}
                )
                count += 1
        return count


class InMemoryEntityStore(LocalEntityStore):

    def __init__(self):
        self.rows: Dict[str, EntitySnapshot] = {}
        self.updates: List[str] = []

    async def get(self, entity_id: str) -> Optional[EntitySnapshot]:
        return self.rows.get(entity_id)

    async def update(self, entity_id: str, snapshot: EntitySnapshot) -> None:
        self.rows[entity_id] = snapshot
        self.updates.append(entity_id)


class FakeJiraClient:
    """Stands in for JiraClient; records every call."""

    def __init__(self):
        self.issues: Dict[str, JiraIssue] = {}
        self.calls: List[tuple] = []
        self.fail_updates = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    def add_issue(self, key: str, summary: str, status: str = "To Do", description: str = "") -> JiraIssue:
        issue = JiraIssue(
            id=str(10000 + len(self.issues)),
            key=key,
            summary=summary,
            status=status,
            issue_type="Bug",
            description=description,
            project_key=key.split("-")[0],
        )
        self.issues[key] = issue
        return issue

    async def get_issue(self, issue_key: str) -> JiraIssue:
        self.calls.append(("get_issue", issue_key))
        if issue_key not in self.issues:
            raise NotFoundError(f"Jira issue {issue_key} not found", upstream_status=404)
        return self.issues[issue_key]

    async def update_issue(self, issue_key: str, summary=None, description=None, status=None) -> None:
        self.calls.append(("update_issue", issue_key, summary, description))
        if self.fail_updates:
            raise TrackerAPIError("API request failed with HTTP 500: boom", upstream_status=500)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


def make_integration(project_id: str = "proj-1", **overrides) -> Integration:
    fields = dict(
        project_id=project_id,
        jira_url="https://myteam.atlassian.net",
        auth_type=AuthType.API_TOKEN,
        email="qa@example.com",
        api_token="token",
        jira_type=JiraType.CLOUD,
        api_version="3",
    )
    fields.update(overrides)
    return Integration(**fields)


@pytest.fixture
def integration_repo():
    return InMemoryIntegrationRepository()


@pytest.fixture
def mapping_repo():
    return InMemoryProjectMappingRepository()


@pytest.fixture
def link_repo():
    return InMemoryLinkRepository()


@pytest.fixture
def event_repo():
    return InMemoryWebhookEventRepository()


@pytest.fixture
def entity_stores():
    return {entity_type: InMemoryEntityStore() for entity_type in EntityType}


@pytest.fixture
def jira_client():
    return FakeJiraClient()


@pytest_asyncio.fixture
async def integration(integration_repo):
    return await integration_repo.save(make_integration())


@pytest.fixture
def link_service(integration_repo, link_repo, entity_stores, jira_client):
    return LinkService(
        integration_repo,
        link_repo,
        entity_stores,
        client_factory=lambda integration: jira_client,
    )


@pytest.fixture
def processor(event_repo, link_service):
    return WebhookProcessor(event_repo, link_service, workers=2, queue_size=10, failure_history=5)

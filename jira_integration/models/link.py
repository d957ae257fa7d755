"""Link models."""

from datetime import datetime
from typing import NamedTuple, Optional
from pydantic import Field
from enum import Enum

from jira_integration.models.base import Document, utcnow


class EntityType(str, Enum):
    """Local entity kinds that can be linked to Jira issues."""
    SUITE = "SUITE"
    CASE = "CASE"
    PLAN = "PLAN"
    DEFECT = "DEFECT"


class SyncStatus(str, Enum):
    """Link sync state."""
    PENDING = "PENDING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"


class SyncDirection(str, Enum):
    """Which side is authoritative for a link."""
    TO_EXTERNAL = "TO_EXTERNAL"  # From our system to Jira
    FROM_EXTERNAL = "FROM_EXTERNAL"  # From Jira to our system
    BIDIRECTIONAL = "BIDIRECTIONAL"

    @property
    def pushes_outbound(self) -> bool:
        return self in (SyncDirection.TO_EXTERNAL, SyncDirection.BIDIRECTIONAL)

    @property
    def pulls_inbound(self) -> bool:
        return self in (SyncDirection.FROM_EXTERNAL, SyncDirection.BIDIRECTIONAL)


class SyncOutcome(str, Enum):
    """Result of a sync call."""
    SYNCED = "SYNCED"
    SKIPPED_NO_LINK = "SKIPPED_NO_LINK"
    SKIPPED_BY_DIRECTION = "SKIPPED_BY_DIRECTION"


class LinkKey(NamedTuple):
    """Natural key of a link."""
    issue_key: str
    entity_type: EntityType
    entity_id: str

    def as_filter(self) -> dict:
        return {
            "issue_key": self.issue_key,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
        }


class Link(Document):
    """Association between one local entity and one Jira issue."""
    integration_id: str
    project_mapping_id: Optional[str] = None

    # Jira issue
    issue_key: str
    issue_id: str
    issue_type: Optional[str] = None
    issue_summary: Optional[str] = None
    issue_status: Optional[str] = None

    # Local entity
    entity_type: EntityType
    entity_id: str

    sync_status: SyncStatus = SyncStatus.PENDING
    sync_direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    last_synced_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> LinkKey:
        return LinkKey(self.issue_key, self.entity_type, self.entity_id)

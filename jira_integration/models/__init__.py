"""Database models for the Jira integration service."""

from .integration import (
    AuthType,
    Credentials,
    ExternalProjectMapping,
    Integration,
    JiraType,
)
from .link import EntityType, Link, LinkKey, SyncDirection, SyncOutcome, SyncStatus
from .webhook import (
    IssueCreated,
    IssueDeleted,
    IssueRef,
    IssueUpdated,
    TrackerEvent,
    UnrecognizedEvent,
    WebhookEvent,
    parse_event,
)

__all__ = [
    "AuthType",
    "Credentials",
    "ExternalProjectMapping",
    "Integration",
    "JiraType",
    "EntityType",
    "Link",
    "LinkKey",
    "SyncDirection",
    "SyncOutcome",
    "SyncStatus",
    "IssueCreated",
    "IssueDeleted",
    "IssueRef",
    "IssueUpdated",
    "TrackerEvent",
    "UnrecognizedEvent",
    "WebhookEvent",
    "parse_event",
]

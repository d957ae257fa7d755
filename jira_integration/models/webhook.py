"""Webhook event records and the parsed event union."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from jira_integration.models.base import Document, utcnow

JIRA_EVENT_PREFIX = "jira:"


class WebhookEvent(Document):
    """Durable record of one inbound delivery. Append-only."""
    integration_id: str
    event_type: str
    issue_key: str = ""
    issue_id: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)
    processed: bool = False
    processed_at: Optional[datetime] = None
    error: Optional[str] = None
    received_at: datetime = Field(default_factory=utcnow)


class IssueRef(BaseModel):
    """Issue identity carried by a webhook payload."""
    model_config = ConfigDict(frozen=True)

    key: str = ""
    id: str = ""


class IssueCreated(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["issue_created"] = "issue_created"
    issue: IssueRef


class IssueUpdated(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["issue_updated"] = "issue_updated"
    issue: IssueRef


class IssueDeleted(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["issue_deleted"] = "issue_deleted"
    issue: IssueRef


class UnrecognizedEvent(BaseModel):
    """Any event type this service does not act on."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["unrecognized"] = "unrecognized"
    event_type: str
    issue: IssueRef


TrackerEvent = Union[IssueCreated, IssueUpdated, IssueDeleted, UnrecognizedEvent]

_EVENT_CLASSES = {
    "issue_created": IssueCreated,
    "issue_updated": IssueUpdated,
    "issue_deleted": IssueDeleted,
}


def event_name(payload: Dict[str, Any]) -> str:
    """Raw event type string of a payload (``webhookEvent`` in Jira deliveries)."""
    for field in ("webhookEvent", "eventType", "event_type"):
        value = payload.get(field)
        if value:
            return str(value)
    return ""


def issue_ref(payload: Dict[str, Any]) -> IssueRef:
    issue = payload.get("issue")
    if not isinstance(issue, dict):
        return IssueRef()
    return IssueRef(key=str(issue.get("key") or ""), id=str(issue.get("id") or ""))


def parse_event(payload: Dict[str, Any]) -> TrackerEvent:
    """Parse a webhook payload into one of the known event variants.

    ``jira:issue_updated`` and ``issue_updated`` are treated alike.
    """
    raw_type = event_name(payload)
    issue = issue_ref(payload)

    name = raw_type[len(JIRA_EVENT_PREFIX):] if raw_type.startswith(JIRA_EVENT_PREFIX) else raw_type
    event_class = _EVENT_CLASSES.get(name)
    if event_class is None:
        return UnrecognizedEvent(event_type=raw_type, issue=issue)
    return event_class(issue=issue)

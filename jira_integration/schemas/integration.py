"""Jira integration API schemas."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field

from jira_integration.models import (
    AuthType,
    Credentials,
    EntityType,
    ExternalProjectMapping,
    Integration,
    JiraType,
    Link,
    SyncDirection,
    SyncOutcome,
    SyncStatus,
)


# Connection testing

class ConnectionConfig(BaseModel):
    """Connection parameters as entered by the user."""
    jira_url: str
    email: Optional[str] = None
    api_token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    access_token: Optional[str] = None

    @property
    def credentials(self) -> Credentials:
        return Credentials(
            access_token=self.access_token,
            email=self.email,
            api_token=self.api_token,
            username=self.username,
            password=self.password,
        )


class CurrentUser(BaseModel):
    account_id: Optional[str] = None
    display_name: str = ""
    email_address: Optional[str] = None


class ConnectionErrorDetail(BaseModel):
    """Diagnosis of a failed handshake."""
    code: str
    message: str
    details: str = ""
    solution: str = ""


class ConnectionResult(BaseModel):
    """Outcome of a connection test. Never an exception."""
    success: bool
    jira_type: JiraType = JiraType.UNKNOWN
    api_version: str = "2"
    current_user: Optional[CurrentUser] = None
    accessible_projects: Optional[int] = None
    error: Optional[ConnectionErrorDetail] = None


# Integrations

class IntegrationSetupRequest(ConnectionConfig):
    """Create or replace the Jira integration of a test project."""
    auth_type: AuthType
    webhook_secret: Optional[str] = None
    sync_enabled: bool = True


class ToggleRequest(BaseModel):
    is_active: bool


class WebhookRegisterRequest(BaseModel):
    events: Optional[List[str]] = None


class IntegrationResponse(BaseModel):
    """Integration without any credential material."""
    id: str
    project_id: str
    jira_url: str
    auth_type: AuthType
    jira_type: JiraType
    api_version: str
    email: Optional[str] = None
    username: Optional[str] = None
    has_webhook_secret: bool = False
    webhook_url: Optional[str] = None
    is_active: bool
    sync_enabled: bool
    last_sync_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, integration: Integration) -> "IntegrationResponse":
        return cls(
            id=integration.id,
            project_id=integration.project_id,
            jira_url=integration.jira_url,
            auth_type=integration.auth_type,
            jira_type=integration.jira_type,
            api_version=integration.api_version,
            email=integration.email,
            username=integration.username,
            has_webhook_secret=bool(integration.webhook_secret),
            webhook_url=integration.webhook_url,
            is_active=integration.is_active,
            sync_enabled=integration.sync_enabled,
            last_sync_at=integration.last_sync_at,
            created_at=integration.created_at,
            updated_at=integration.updated_at,
        )


class SetupResponse(BaseModel):
    integration: IntegrationResponse
    connection: ConnectionResult


# Project mappings

class ProjectMapRequest(BaseModel):
    project_key: str
    issue_type_mapping: Dict[str, str] = Field(default_factory=dict)
    sync_enabled: bool = True


class ProjectMappingResponse(BaseModel):
    id: str
    integration_id: str
    project_key: str
    project_id: str
    project_name: str
    issue_type_mapping: Dict[str, str]
    sync_enabled: bool
    created_at: datetime

    @classmethod
    def from_model(cls, mapping: ExternalProjectMapping) -> "ProjectMappingResponse":
        return cls(**mapping.model_dump())


# Links

class LinkRequest(BaseModel):
    issue_key: str
    entity_type: EntityType
    entity_id: str
    project_mapping_id: Optional[str] = None
    sync_direction: Optional[SyncDirection] = None


class UnlinkRequest(BaseModel):
    issue_key: str
    entity_type: EntityType
    entity_id: str


class DirectionUpdate(BaseModel):
    sync_direction: SyncDirection


class LinkResponse(BaseModel):
    id: str
    integration_id: str
    project_mapping_id: Optional[str] = None
    issue_key: str
    issue_id: str
    issue_type: Optional[str] = None
    issue_summary: Optional[str] = None
    issue_status: Optional[str] = None
    entity_type: EntityType
    entity_id: str
    sync_status: SyncStatus
    sync_direction: SyncDirection
    last_synced_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, link: Link) -> "LinkResponse":
        return cls(**link.model_dump(exclude={"created_at", "updated_at"}))


# Sync

class SyncToExternalRequest(BaseModel):
    entity_type: EntityType
    entity_id: str


class SyncFromExternalRequest(BaseModel):
    issue_key: str


class SyncResponse(BaseModel):
    outcome: SyncOutcome


# Webhooks

class WebhookAccepted(BaseModel):
    status: str = "accepted"
    event_id: str
    queued: bool


class WebhookEventResponse(BaseModel):
    id: str
    integration_id: str
    event_type: str
    issue_key: str
    issue_id: str
    processed: bool
    processed_at: Optional[datetime] = None
    error: Optional[str] = None
    received_at: datetime


class ProcessorStatus(BaseModel):
    running: bool
    workers: int
    queue_size: int
    in_flight: List[Dict[str, Any]]
    stats: Dict[str, int]
    recent_failures: List[Dict[str, Any]]

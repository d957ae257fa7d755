"""Integration models."""

from datetime import datetime
from typing import Optional, Dict
from pydantic import BaseModel, Field, model_validator
from enum import Enum

from jira_integration.models.base import Document, utcnow


class AuthType(str, Enum):
    """How the service authenticates against Jira."""
    OAUTH = "OAUTH"
    API_TOKEN = "API_TOKEN"
    BASIC = "BASIC"


class JiraType(str, Enum):
    """Jira deployment flavor."""
    CLOUD = "CLOUD"
    SERVER = "SERVER"
    DATACENTER = "DATACENTER"
    UNKNOWN = "UNKNOWN"


# Credential fields that must be populated for each auth type
CREDENTIAL_FIELDS: Dict[AuthType, tuple] = {
    AuthType.OAUTH: ("access_token",),
    AuthType.API_TOKEN: ("email", "api_token"),
    AuthType.BASIC: ("username", "password"),
}
ALL_CREDENTIAL_FIELDS = ("access_token", "email", "api_token", "username", "password")

# Fields encrypted at rest
SECRET_FIELDS = ("access_token", "api_token", "password", "webhook_secret")


class Credentials(BaseModel):
    """Plain-text credentials, only ever held in memory."""
    access_token: Optional[str] = None
    email: Optional[str] = None
    api_token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def has_email_token(self) -> bool:
        return bool(self.email and self.api_token)

    @property
    def has_username_password(self) -> bool:
        return bool(self.username and self.password)


class Integration(Document):
    """A test project's connection to one Jira instance.

    Secret fields hold encrypted values once persisted; exactly the
    credential set belonging to ``auth_type`` is populated.
    """
    project_id: str
    jira_url: str
    auth_type: AuthType

    # Authentication
    access_token: Optional[str] = None
    email: Optional[str] = None
    api_token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    # Detected at validation time
    jira_type: JiraType = JiraType.UNKNOWN
    api_version: str = "3"

    # Webhooks
    webhook_secret: Optional[str] = None
    webhook_url: Optional[str] = None

    is_active: bool = True
    sync_enabled: bool = True
    last_sync_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_credential_set(self) -> "Integration":
        required = CREDENTIAL_FIELDS[self.auth_type]
        missing = [name for name in required if not getattr(self, name)]
        if missing:
            raise ValueError(
                f"{self.auth_type.value} authentication requires: {', '.join(missing)}"
            )
        extra = [
            name for name in ALL_CREDENTIAL_FIELDS
            if name not in required and getattr(self, name)
        ]
        if extra:
            raise ValueError(
                f"{self.auth_type.value} authentication does not accept: {', '.join(extra)}"
            )
        return self


class ExternalProjectMapping(Document):
    """A Jira project mapped to an integration."""
    integration_id: str
    project_key: str
    project_id: str
    project_name: str
    # local entity type -> Jira issue type name
    issue_type_mapping: Dict[str, str] = Field(default_factory=dict)
    sync_enabled: bool = True
    created_at: datetime = Field(default_factory=utcnow)

"""Integration service for managing Jira integrations."""

from typing import Any, Dict, List, Optional, Tuple
import logging
import httpx

from jira_integration.core.config import Settings, get_settings
from jira_integration.integrations.errors import (
    AuthConfigError,
    ErrorCode,
    InactiveIntegrationError,
    IntegrationError,
    NotFoundError,
)
from jira_integration.integrations.jira import JiraClient, JiraIssue, JiraProject
from jira_integration.models import Credentials, ExternalProjectMapping, Integration
from jira_integration.models.base import utcnow
from jira_integration.models.integration import ALL_CREDENTIAL_FIELDS, CREDENTIAL_FIELDS
from jira_integration.repositories import IntegrationRepository, ProjectMappingRepository
from jira_integration.schemas.integration import (
    ConnectionConfig,
    ConnectionResult,
    IntegrationSetupRequest,
    ProjectMapRequest,
)
from jira_integration.services.connection_validator import ConnectionValidator
from jira_integration.utils.crypto import decrypt_optional, encrypt_optional
from jira_integration.utils.urls import normalize_url

logger = logging.getLogger(__name__)


class IntegrationService:
    """Service for managing Jira integrations."""

    def __init__(
        self,
        integrations: IntegrationRepository,
        mappings: ProjectMappingRepository,
        validator: Optional[ConnectionValidator] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.integrations = integrations
        self.mappings = mappings
        self.settings = settings or get_settings()
        self.validator = validator or ConnectionValidator()
        # Injected into every JiraClient this service builds
        self.transport = transport

    # Credentials

    def _encrypt(self, value: Optional[str]) -> Optional[str]:
        return encrypt_optional(value, self.settings.encryption_key, self.settings.encryption_salt)

    def _decrypt(self, value: Optional[str]) -> Optional[str]:
        return decrypt_optional(value, self.settings.encryption_key, self.settings.encryption_salt)

    def resolve_credentials(self, integration: Integration) -> Credentials:
        """Decrypted credentials of a stored integration."""
        return Credentials(
            access_token=self._decrypt(integration.access_token),
            email=integration.email,
            api_token=self._decrypt(integration.api_token),
            username=integration.username,
            password=self._decrypt(integration.password),
        )

    def resolve_webhook_secret(self, integration: Integration) -> Optional[str]:
        return self._decrypt(integration.webhook_secret)

    def build_client(self, integration: Integration) -> JiraClient:
        """Jira client for a stored integration."""
        return JiraClient.for_integration(
            integration,
            self.resolve_credentials(integration),
            timeout=self.settings.client_timeout,
            max_attempts=self.settings.client_max_attempts,
            transport=self.transport,
        )

    # Integrations

    async def test_connection(self, config: ConnectionConfig) -> ConnectionResult:
        """Test Jira connection without saving."""
        return await self.validator.test_connection(config)

    async def setup_integration(
        self,
        project_id: str,
        request: IntegrationSetupRequest,
    ) -> Tuple[Integration, ConnectionResult]:
        """Validate the connection, then create or replace the project's integration."""
        required = CREDENTIAL_FIELDS[request.auth_type]
        missing = [name for name in required if not getattr(request, name)]
        if missing:
            raise AuthConfigError(
                f"{', '.join(missing)} required for {request.auth_type.value} auth"
            )

        # Only the credential set of the chosen auth type is tested and kept
        credentials = {
            name: (getattr(request, name) if name in required else None)
            for name in ALL_CREDENTIAL_FIELDS
        }
        config = ConnectionConfig(jira_url=request.jira_url, **credentials)
        result = await self.test_connection(config)
        if not result.success:
            error = result.error
            raise IntegrationError(
                f"Failed to connect to Jira: {error.message}",
                code=ErrorCode(error.code),
                status_code=400,
                details=error.model_dump(),
            )

        integration = Integration(
            project_id=project_id,
            jira_url=normalize_url(request.jira_url),
            auth_type=request.auth_type,
            access_token=self._encrypt(credentials["access_token"]),
            email=credentials["email"],
            api_token=self._encrypt(credentials["api_token"]),
            username=credentials["username"],
            password=self._encrypt(credentials["password"]),
            jira_type=result.jira_type,
            api_version=result.api_version,
            webhook_secret=self._encrypt(request.webhook_secret),
            is_active=True,
            sync_enabled=request.sync_enabled,
        )
        integration = await self.integrations.save(integration)
        logger.info(
            f"Configured Jira integration {integration.id} for project {project_id} "
            f"({result.jira_type.value})"
        )
        return integration, result

    async def get_integration(self, project_id: str) -> Optional[Integration]:
        return await self.integrations.get_by_project(project_id)

    async def require_integration(self, project_id: str) -> Integration:
        integration = await self.integrations.get_by_project(project_id)
        if not integration:
            raise NotFoundError("Jira integration not found")
        return integration

    async def require_active(self, project_id: str) -> Integration:
        integration = await self.require_integration(project_id)
        if not integration.is_active:
            raise InactiveIntegrationError("Jira integration not found or inactive")
        return integration

    async def toggle_integration(self, project_id: str, is_active: bool) -> Integration:
        """Enable or disable an integration."""
        integration = await self.require_integration(project_id)
        updated = await self.integrations.update_fields(
            integration.id,
            {"is_active": is_active, "updated_at": utcnow()},
        )
        logger.info(f"Jira integration {integration.id} {'enabled' if is_active else 'disabled'}")
        return updated

    async def register_webhook(self, project_id: str, events: Optional[List[str]] = None) -> Integration:
        """Create a Jira webhook that delivers to this service."""
        integration = await self.require_active(project_id)
        callback_url = f"{self.settings.webhook_base_url.rstrip('/')}/{project_id}"

        async with self.build_client(integration) as client:
            webhook_ref = await client.create_webhook(callback_url, events or self.settings.webhook_events)

        logger.info(f"Registered Jira webhook {webhook_ref or callback_url} for project {project_id}")
        return await self.integrations.update_fields(
            integration.id,
            {"webhook_url": webhook_ref or callback_url, "updated_at": utcnow()},
        )

    # Jira projects

    async def list_external_projects(self, project_id: str) -> List[JiraProject]:
        integration = await self.require_active(project_id)
        async with self.build_client(integration) as client:
            return await client.get_projects()

    async def map_project(self, project_id: str, request: ProjectMapRequest) -> ExternalProjectMapping:
        """Map a Jira project to the integration."""
        integration = await self.require_active(project_id)

        async with self.build_client(integration) as client:
            projects = await client.get_projects()

        jira_project = next(
            (p for p in projects if p.key.upper() == request.project_key.upper()),
            None,
        )
        if jira_project is None:
            raise NotFoundError(f"Jira project {request.project_key} not found")

        mapping = ExternalProjectMapping(
            integration_id=integration.id,
            project_key=jira_project.key,
            project_id=jira_project.id,
            project_name=jira_project.name,
            issue_type_mapping=request.issue_type_mapping,
            sync_enabled=request.sync_enabled,
        )
        mapping = await self.mappings.save(mapping)
        logger.info(f"Mapped Jira project {jira_project.key} to integration {integration.id}")
        return mapping

    async def list_mappings(self, project_id: str) -> List[ExternalProjectMapping]:
        integration = await self.require_integration(project_id)
        return await self.mappings.list_by_integration(integration.id)

    async def get_issue_types(self, project_id: str, project_key: str) -> List[Dict[str, Any]]:
        integration = await self.require_active(project_id)
        async with self.build_client(integration) as client:
            return await client.get_issue_types(project_key)

    # Issues

    async def search_issues(self, project_id: str, jql: str = "", max_results: int = 50) -> List[JiraIssue]:
        integration = await self.require_active(project_id)
        async with self.build_client(integration) as client:
            return await client.search_issues(jql, max_results)

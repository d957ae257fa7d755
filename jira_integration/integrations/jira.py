"""Jira REST client."""

from typing import Optional, Dict, Any, List
import logging
import httpx
from pydantic import BaseModel

from jira_integration.integrations.auth import build_auth_header
from jira_integration.integrations.base import BaseTrackerClient
from jira_integration.integrations.errors import InvalidTransitionError, NotFoundError
from jira_integration.models.integration import Credentials, Integration
from jira_integration.utils.adf import adf_to_text, to_rich_text

logger = logging.getLogger(__name__)

ISSUE_FIELDS = ["summary", "status", "issuetype", "description", "project"]
DEFAULT_WEBHOOK_NAME = "Qualix Integration Webhook"


class JiraProject(BaseModel):
    id: str
    key: str
    name: str


class JiraIssue(BaseModel):
    """The subset of a Jira issue the sync engine works with."""
    id: str
    key: str
    summary: str = ""
    status: Optional[str] = None
    issue_type: Optional[str] = None
    description: str = ""
    project_key: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "JiraIssue":
        fields = data.get("fields") or {}
        return cls(
            id=str(data.get("id", "")),
            key=str(data.get("key", "")),
            summary=fields.get("summary") or "",
            status=(fields.get("status") or {}).get("name"),
            issue_type=(fields.get("issuetype") or {}).get("name"),
            description=adf_to_text(fields.get("description")),
            project_key=(fields.get("project") or {}).get("key"),
        )


class JiraClient(BaseTrackerClient):
    """Typed operations against the Jira REST API (v2 or v3)."""

    def __init__(
        self,
        base_url: str,
        credentials: Credentials,
        api_version: str = "3",
        timeout: float = 30.0,
        max_attempts: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        super().__init__(
            api_url=f"{self.base_url}/rest/api/{api_version}",
            auth_header=build_auth_header(credentials),
            timeout=timeout,
            max_attempts=max_attempts,
            transport=transport,
        )

    @classmethod
    def for_integration(
        cls,
        integration: Integration,
        credentials: Credentials,
        **kwargs,
    ) -> "JiraClient":
        """Build a client from a stored integration and its decrypted credentials."""
        return cls(
            base_url=integration.jira_url,
            credentials=credentials,
            api_version=integration.api_version,
            **kwargs,
        )

    # Projects

    async def get_projects(self) -> List[JiraProject]:
        """Get all Jira projects accessible to the user."""
        response = await self.make_api_request("GET", "/project")
        return [
            JiraProject(id=str(p["id"]), key=p["key"], name=p.get("name", p["key"]))
            for p in response.json() or []
        ]

    async def get_issue_types(self, project_key: str) -> List[Dict[str, Any]]:
        """Get issue types for a project."""
        response = await self.make_api_request("GET", f"/project/{project_key}")
        return (response.json() or {}).get("issueTypes", [])

    # Issues

    async def get_issue(self, issue_key: str) -> JiraIssue:
        """Get a Jira issue by key."""
        try:
            response = await self.make_api_request(
                "GET", f"/issue/{issue_key}", params={"fields": ",".join(ISSUE_FIELDS)}
            )
        except NotFoundError as e:
            raise NotFoundError(
                f"Jira issue {issue_key} not found", upstream_status=e.upstream_status
            ) from e
        return JiraIssue.from_api(response.json())

    async def search_issues(self, jql: str, max_results: int = 50) -> List[JiraIssue]:
        """Search Jira issues using JQL."""
        response = await self.make_api_request(
            "POST",
            "/search",
            json={"jql": jql, "maxResults": max_results, "fields": ISSUE_FIELDS},
        )
        return [JiraIssue.from_api(issue) for issue in (response.json() or {}).get("issues", [])]

    async def create_issue(
        self,
        project_key: str,
        summary: str,
        issue_type: str,
        description: Optional[str] = None,
        parent_key: Optional[str] = None,
    ) -> JiraIssue:
        """Create an issue and return it as Jira stores it."""
        fields: Dict[str, Any] = {
            "project": {"key": project_key},
            "summary": summary,
            "issuetype": {"name": issue_type},
        }
        if description:
            fields["description"] = to_rich_text(description, self.api_version)
        # Sub-tasks, or stories under an epic
        if parent_key:
            fields["parent"] = {"key": parent_key}

        response = await self.make_api_request("POST", "/issue", json={"fields": fields})
        created = response.json()
        logger.info(f"Created Jira issue {created.get('key')} in project {project_key}")
        return await self.get_issue(created["key"])

    async def update_issue(
        self,
        issue_key: str,
        summary: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[str] = None,
    ) -> None:
        """Update summary/description, then move the issue to ``status`` if given."""
        fields: Dict[str, Any] = {}
        if summary:
            fields["summary"] = summary
        if description:
            fields["description"] = to_rich_text(description, self.api_version)

        if fields:
            await self.make_api_request("PUT", f"/issue/{issue_key}", json={"fields": fields})

        if status:
            await self.transition_issue(issue_key, status)

    async def transition_issue(self, issue_key: str, target_status: str) -> None:
        """Execute the workflow transition leading to ``target_status``."""
        response = await self.make_api_request("GET", f"/issue/{issue_key}/transitions")
        transitions = (response.json() or {}).get("transitions", [])

        wanted = target_status.strip().lower()
        transition = next(
            (t for t in transitions if str((t.get("to") or {}).get("name", "")).lower() == wanted),
            None,
        )
        if transition is None:
            transition = next(
                (t for t in transitions if str(t.get("name", "")).lower() == wanted),
                None,
            )

        if transition is None:
            raise InvalidTransitionError(
                f"Cannot transition {issue_key} to status: {target_status}",
                details={"available": [(t.get("to") or {}).get("name") for t in transitions]},
            )

        await self.make_api_request(
            "POST",
            f"/issue/{issue_key}/transitions",
            json={"transition": {"id": transition["id"]}},
        )

    async def add_comment(self, issue_key: str, text: str) -> None:
        await self.make_api_request(
            "POST",
            f"/issue/{issue_key}/comment",
            json={"body": to_rich_text(text, self.api_version)},
        )

    # Webhooks

    async def create_webhook(self, url: str, events: List[str], name: str = DEFAULT_WEBHOOK_NAME) -> str:
        """Register a webhook; returns its self link."""
        response = await self.make_api_request(
            "POST",
            "/webhook",
            json={"name": name, "url": url, "events": events, "filters": {}},
        )
        data = self.json_body(response) or {}
        return str(data.get("self", ""))

"""Connection validator tests."""

from typing import Callable, Dict

import httpx
import pytest

from jira_integration.models import JiraType
from jira_integration.schemas.integration import ConnectionConfig
from jira_integration.services.connection_validator import ConnectionValidator

CLOUD_URL = "https://myteam.atlassian.net"
SERVER_URL = "https://jira.example.com"

ME = {"accountId": "5b10a", "displayName": "QA Bot", "emailAddress": "qa@example.com"}
PROJECTS = [{"id": "1", "key": "ABC", "name": "Alpha"}, {"id": "2", "key": "XYZ", "name": "Zeta"}]

Route = Callable[[httpx.Request], httpx.Response]


def routed(routes: Dict[str, Route]) -> httpx.MockTransport:
    """Dispatch on the last path segment; '' is the site root."""
    def handler(request: httpx.Request) -> httpx.Response:
        segment = request.url.path.rstrip("/").rsplit("/", 1)[-1] if request.url.path.strip("/") else ""
        route = routes.get(segment)
        if route is None:
            return httpx.Response(404)
        return route(request)
    return httpx.MockTransport(handler)


def respond(status: int, body=None) -> Route:
    def route(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=body) if body is not None else httpx.Response(status)
    return route


def fail_with(exc_class, message: str) -> Route:
    def route(request: httpx.Request) -> httpx.Response:
        raise exc_class(message, request=request)
    return route


def healthy_routes(**overrides) -> Dict[str, Route]:
    routes = {
        "": respond(200),
        "serverInfo": respond(401),
        "myself": respond(200, ME),
        "project": respond(200, PROJECTS),
    }
    routes.update(overrides)
    return routes


def make_validator(routes: Dict[str, Route]) -> ConnectionValidator:
    return ConnectionValidator(transport=routed(routes))


class TestConnectionValidator:
    """Test the handshake and its diagnostics."""

    @pytest.mark.asyncio
    async def test_success(self):
        validator = make_validator(healthy_routes())

        result = await validator.test_connection(
            ConnectionConfig(jira_url="myteam.atlassian.net", email="qa@example.com", api_token="t")
        )

        assert result.success is True
        assert result.jira_type == JiraType.CLOUD
        assert result.api_version == "3"
        assert result.current_user.display_name == "QA Bot"
        assert result.current_user.account_id == "5b10a"
        assert result.accessible_projects == 2
        assert result.error is None

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        validator = make_validator(healthy_routes())

        result = await validator.test_connection(
            ConnectionConfig(jira_url="https://atlassian.net", email="qa@example.com", api_token="t")
        )

        assert result.success is False
        assert result.error.code == "URL_INVALID"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("route, code", [
        (fail_with(httpx.ConnectError, "[Errno -2] Name or service not known"), "DNS_ERROR"),
        (fail_with(httpx.ConnectError, "[Errno 111] Connection refused"), "CONNECTION_REFUSED"),
        (fail_with(httpx.ConnectTimeout, "timed out"), "TIMEOUT"),
        (fail_with(httpx.ConnectError, "[Errno 101] Network is unreachable"), "URL_UNREACHABLE"),
    ])
    async def test_reachability_failures(self, route, code):
        validator = make_validator(healthy_routes(**{"": route}))

        result = await validator.test_connection(
            ConnectionConfig(jira_url=CLOUD_URL, email="qa@example.com", api_token="t")
        )

        assert result.success is False
        assert result.error.code == code
        assert result.error.solution

    @pytest.mark.asyncio
    async def test_any_status_proves_reachability(self):
        validator = make_validator(healthy_routes(**{"": respond(503)}))

        result = await validator.test_connection(
            ConnectionConfig(jira_url=CLOUD_URL, email="qa@example.com", api_token="t")
        )

        assert result.success is True

    @pytest.mark.asyncio
    async def test_server_info_failure_is_swallowed(self):
        validator = make_validator(
            healthy_routes(serverInfo=fail_with(httpx.ReadTimeout, "timed out"))
        )

        result = await validator.test_connection(
            ConnectionConfig(jira_url=SERVER_URL, username="admin", password="pw")
        )

        assert result.success is True
        assert result.jira_type == JiraType.UNKNOWN
        assert result.api_version == "2"

    @pytest.mark.asyncio
    async def test_server_info_refines_type(self):
        validator = make_validator(
            healthy_routes(serverInfo=respond(200, {"deploymentType": "DataCenter"}))
        )

        result = await validator.test_connection(
            ConnectionConfig(jira_url=SERVER_URL, username="admin", password="pw")
        )

        assert result.jira_type == JiraType.DATACENTER

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        validator = make_validator(healthy_routes())

        result = await validator.test_connection(
            ConnectionConfig(jira_url=CLOUD_URL, email="qa@example.com")
        )

        assert result.success is False
        assert result.error.code == "AUTH_CONFIG_ERROR"

    @pytest.mark.asyncio
    async def test_username_password_against_cloud(self):
        validator = make_validator(healthy_routes(myself=respond(401)))

        result = await validator.test_connection(
            ConnectionConfig(jira_url=CLOUD_URL, username="admin", password="pw")
        )

        assert result.success is False
        assert result.jira_type == JiraType.CLOUD
        assert result.error.code == "WRONG_AUTH_METHOD_CLOUD"
        assert "API Token" in result.error.solution

    @pytest.mark.asyncio
    async def test_auth_failure_reports_probed_api_version(self):
        seen = []

        def rejected(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(401)

        validator = make_validator(
            healthy_routes(serverInfo=respond(200, {"deploymentType": "Cloud"}), myself=rejected)
        )

        result = await validator.test_connection(
            ConnectionConfig(jira_url=SERVER_URL, username="admin", password="pw")
        )

        assert seen == ["/rest/api/2/myself"]
        assert result.jira_type == JiraType.CLOUD
        assert result.api_version == "2"
        assert result.error.code == "WRONG_AUTH_METHOD_CLOUD"

    @pytest.mark.asyncio
    async def test_api_token_against_server(self):
        validator = make_validator(
            healthy_routes(
                serverInfo=respond(200, {"deploymentType": "Server"}),
                myself=respond(401),
            )
        )

        result = await validator.test_connection(
            ConnectionConfig(jira_url=SERVER_URL, email="qa@example.com", api_token="t")
        )

        assert result.jira_type == JiraType.SERVER
        assert result.error.code == "WRONG_AUTH_METHOD_SERVER"

    @pytest.mark.asyncio
    async def test_rejected_api_token(self):
        validator = make_validator(healthy_routes(myself=respond(401)))

        result = await validator.test_connection(
            ConnectionConfig(jira_url=CLOUD_URL, email="qa@example.com", api_token="t")
        )

        assert result.error.code == "INVALID_CREDENTIALS"

    @pytest.mark.asyncio
    async def test_rejected_access_token(self):
        validator = make_validator(healthy_routes(myself=respond(401)))

        result = await validator.test_connection(
            ConnectionConfig(jira_url=CLOUD_URL, access_token="oauth")
        )

        assert result.error.code == "AUTHENTICATION_FAILED"

    @pytest.mark.asyncio
    async def test_forbidden(self):
        validator = make_validator(healthy_routes(myself=respond(403)))

        result = await validator.test_connection(
            ConnectionConfig(jira_url=CLOUD_URL, email="qa@example.com", api_token="t")
        )

        assert result.error.code == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_unexpected_identity_response(self):
        validator = make_validator(
            healthy_routes(myself=respond(404, {"errorMessages": ["Site is being migrated"]}))
        )

        result = await validator.test_connection(
            ConnectionConfig(jira_url=CLOUD_URL, email="qa@example.com", api_token="t")
        )

        assert result.error.code == "UNEXPECTED_ERROR"
        assert result.error.details == "Site is being migrated"

    @pytest.mark.asyncio
    async def test_no_projects_keeps_current_user(self):
        validator = make_validator(healthy_routes(project=respond(200, [])))

        result = await validator.test_connection(
            ConnectionConfig(jira_url=CLOUD_URL, email="qa@example.com", api_token="t")
        )

        assert result.success is False
        assert result.error.code == "NO_PROJECTS"
        assert result.current_user.display_name == "QA Bot"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, code", [
        (404, "API_NOT_FOUND"),
        (405, "METHOD_NOT_ALLOWED"),
        (500, "HTTP_ERROR"),
    ])
    async def test_project_listing_status(self, status, code):
        validator = make_validator(healthy_routes(project=respond(status, {"errorMessages": ["x"]})))

        result = await validator.test_connection(
            ConnectionConfig(jira_url=CLOUD_URL, email="qa@example.com", api_token="t")
        )

        assert result.error.code == code
        assert result.jira_type == JiraType.CLOUD
        assert result.api_version == "3"

    @pytest.mark.asyncio
    async def test_identity_server_error_keeps_detected_type(self):
        validator = make_validator(
            healthy_routes(
                serverInfo=respond(200, {"deploymentType": "DataCenter"}),
                myself=respond(502, {"errorMessages": ["Bad gateway"]}),
            )
        )

        result = await validator.test_connection(
            ConnectionConfig(jira_url=SERVER_URL, username="admin", password="pw")
        )

        assert result.error.code == "HTTP_ERROR"
        assert result.jira_type == JiraType.DATACENTER
        assert result.api_version == "2"

    @pytest.mark.asyncio
    async def test_non_http_failure(self):
        def broken_json(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>login</html>")

        validator = make_validator(healthy_routes(myself=broken_json))

        result = await validator.test_connection(
            ConnectionConfig(jira_url=CLOUD_URL, email="qa@example.com", api_token="t")
        )

        assert result.success is False
        assert result.error.code == "UNEXPECTED_ERROR"

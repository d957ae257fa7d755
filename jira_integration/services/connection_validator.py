"""Jira connection validation.

Detects the Jira flavor behind a URL, checks credentials and project access,
and explains every failure in terms a user can act on. ``test_connection``
never raises.
"""

import socket
from typing import Any, Dict, Optional
import logging
import httpx

from jira_integration.core.config import get_settings
from jira_integration.integrations.auth import build_auth_header
from jira_integration.integrations.base import error_text
from jira_integration.integrations.errors import AuthConfigError, ErrorCode, URLValidationError
from jira_integration.models import Credentials, JiraType
from jira_integration.schemas.integration import (
    ConnectionConfig,
    ConnectionErrorDetail,
    ConnectionResult,
    CurrentUser,
)
from jira_integration.utils.urls import EXPECTED_FORMAT, api_version_for, detect_jira_type, normalize_url

logger = logging.getLogger(__name__)

API_TOKEN_URL = "https://id.atlassian.com/manage-profile/security/api-tokens"

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)
_REFUSED_MARKERS = ("connection refused", "actively refused")


def _failure(
    code: ErrorCode,
    message: str,
    details: str,
    solution: str,
    jira_type: JiraType = JiraType.UNKNOWN,
    api_version: str = "2",
    current_user: Optional[CurrentUser] = None,
) -> ConnectionResult:
    return ConnectionResult(
        success=False,
        jira_type=jira_type,
        api_version=api_version,
        current_user=current_user,
        error=ConnectionErrorDetail(
            code=code.value,
            message=message,
            details=details,
            solution=solution,
        ),
    )


def _exception_chain(exc: BaseException):
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__ or exc.__context__


def classify_connect_error(exc: httpx.ConnectError) -> ErrorCode:
    """DNS_ERROR, CONNECTION_REFUSED or URL_UNREACHABLE for a failed connect."""
    for error in _exception_chain(exc):
        if isinstance(error, socket.gaierror):
            return ErrorCode.DNS_ERROR
        if isinstance(error, ConnectionRefusedError):
            return ErrorCode.CONNECTION_REFUSED

    text = " ".join(str(error) for error in _exception_chain(exc)).lower()
    if any(marker in text for marker in _DNS_MARKERS):
        return ErrorCode.DNS_ERROR
    if any(marker in text for marker in _REFUSED_MARKERS):
        return ErrorCode.CONNECTION_REFUSED
    return ErrorCode.URL_UNREACHABLE


def _current_user(data: Dict[str, Any]) -> CurrentUser:
    return CurrentUser(
        account_id=data.get("accountId") or data.get("key"),
        display_name=data.get("displayName") or data.get("name") or "",
        email_address=data.get("emailAddress"),
    )


class ConnectionValidator:
    """Step-by-step Jira handshake with actionable diagnostics."""

    def __init__(
        self,
        reachability_timeout: Optional[float] = None,
        server_info_timeout: Optional[float] = None,
        request_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.reachability_timeout = reachability_timeout or settings.reachability_timeout
        self.server_info_timeout = server_info_timeout or settings.server_info_timeout
        self.request_timeout = request_timeout or settings.validation_timeout
        self.transport = transport

    async def test_connection(self, config: ConnectionConfig) -> ConnectionResult:
        """Validate a Jira connection. Failures are reported, never raised."""
        try:
            base_url = normalize_url(config.jira_url)
        except URLValidationError as e:
            return _failure(
                ErrorCode.URL_INVALID,
                e.message,
                f"Could not use Jira URL: {config.jira_url!r}",
                f"Use the address of your Jira site, e.g. {EXPECTED_FORMAT}",
            )

        async with httpx.AsyncClient(
            transport=self.transport,
            follow_redirects=True,
            max_redirects=5,
            headers={"Accept": "application/json"},
        ) as client:
            try:
                return await self._handshake(client, base_url, config)
            except Exception as e:
                logger.exception(f"Unexpected failure while validating {base_url}")
                return self._classify_failure(e)

    async def _handshake(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        config: ConnectionConfig,
    ) -> ConnectionResult:
        # Step 1: reachability
        unreachable = await self._check_reachability(client, base_url, config.jira_url)
        if unreachable:
            return unreachable

        # Step 2: type and API version from the URL alone
        api_version = api_version_for(detect_jira_type(base_url))
        api_url = f"{base_url}/rest/api/{api_version}"

        # Step 3: server info, best effort
        server_info = await self._fetch_server_info(client, api_url)
        jira_type = detect_jira_type(base_url, server_info)

        # Step 4: credentials
        credentials = config.credentials
        try:
            auth_header = build_auth_header(credentials)
        except AuthConfigError as e:
            return _failure(
                ErrorCode.AUTH_CONFIG_ERROR,
                e.message,
                "Neither an access token, an email with API token, nor a username with password was supplied",
                "Provide Email + API Token for Jira Cloud, or username + password / personal access token for Jira Server.",
                jira_type=jira_type,
                api_version=api_version,
            )
        headers = {"Authorization": auth_header}

        # Step 5: identity
        response = await client.get(f"{api_url}/myself", headers=headers, timeout=self.request_timeout)
        if response.status_code == 401:
            return self._diagnose_auth_failure(credentials, jira_type, api_version)
        if response.status_code == 403:
            return _failure(
                ErrorCode.FORBIDDEN,
                "Authentication succeeded but access denied",
                "Valid credentials but insufficient permissions",
                'Ensure the Jira user has "Browse Projects" permission and access to at least one project.',
                jira_type=jira_type,
                api_version=api_version,
            )
        if response.status_code >= 500:
            return self._classify_status(response, jira_type, api_version)
        if response.status_code != 200:
            return _failure(
                ErrorCode.UNEXPECTED_ERROR,
                f"Unexpected response: {response.status_code}",
                error_text(response),
                "Check Jira server logs or contact Jira administrator.",
                jira_type=jira_type,
                api_version=api_version,
            )
        current_user = _current_user(response.json() or {})

        # Step 6: project scope
        response = await client.get(f"{api_url}/project", headers=headers, timeout=self.request_timeout)
        if response.status_code >= 400:
            return self._classify_status(response, jira_type, api_version)
        projects = response.json()
        accessible_projects = len(projects) if isinstance(projects, list) else 0

        if accessible_projects == 0:
            return _failure(
                ErrorCode.NO_PROJECTS,
                "Connection successful but no accessible projects",
                "User authenticated successfully but cannot access any Jira projects",
                "Grant the user access to at least one Jira project or check project permissions.",
                jira_type=jira_type,
                api_version=api_version,
                current_user=current_user,
            )

        logger.info(
            f"Validated Jira connection to {base_url} ({jira_type.value}, API v{api_version}, "
            f"{accessible_projects} projects)"
        )
        return ConnectionResult(
            success=True,
            jira_type=jira_type,
            api_version=api_version,
            current_user=current_user,
            accessible_projects=accessible_projects,
        )

    async def _check_reachability(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        raw_url: str,
    ) -> Optional[ConnectionResult]:
        """None when the server answered with any status at all."""
        try:
            await client.get(base_url, timeout=self.reachability_timeout)
            return None
        except httpx.TimeoutException:
            return _failure(
                ErrorCode.TIMEOUT,
                "Connection timeout",
                "Request timed out before reaching Jira server",
                "Check network connectivity and firewall settings. The Jira server might be slow or unreachable.",
            )
        except httpx.TooManyRedirects:
            # It answered, just not with a final page
            return None
        except httpx.ConnectError as e:
            code = classify_connect_error(e)
            if code == ErrorCode.DNS_ERROR:
                return _failure(
                    code,
                    "Domain name not found",
                    f"Cannot resolve domain: {raw_url}",
                    "Check the Jira URL spelling. For Cloud, it should be https://yourcompany.atlassian.net",
                )
            if code == ErrorCode.CONNECTION_REFUSED:
                return _failure(
                    code,
                    "Connection refused",
                    "Jira server refused the connection",
                    "Check that Jira is running and accessible. Verify firewall settings and port configuration.",
                )
            return self._unreachable(str(e))
        except httpx.TransportError as e:
            return self._unreachable(str(e))

    @staticmethod
    def _unreachable(details: str) -> ConnectionResult:
        return _failure(
            ErrorCode.URL_UNREACHABLE,
            "Cannot reach Jira URL",
            details or "The provided URL did not respond",
            "Check that the URL is correct and the Jira server is accessible from this network.",
        )

    async def _fetch_server_info(self, client: httpx.AsyncClient, api_url: str) -> Optional[Dict[str, Any]]:
        """Unauthenticated serverInfo; often unavailable, which is fine."""
        try:
            response = await client.get(f"{api_url}/serverInfo", timeout=self.server_info_timeout)
            if response.status_code == 200:
                data = response.json()
                return data if isinstance(data, dict) else None
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"serverInfo unavailable at {api_url}: {e}")
        return None

    @staticmethod
    def _diagnose_auth_failure(credentials: Credentials, jira_type: JiraType, api_version: str) -> ConnectionResult:
        """Guess why Jira rejected the credentials."""
        if jira_type == JiraType.CLOUD and credentials.has_username_password:
            return _failure(
                ErrorCode.WRONG_AUTH_METHOD_CLOUD,
                "Invalid authentication for Jira Cloud",
                "Jira Cloud does not accept username/password authentication",
                f"Use Email + API Token instead. Generate an API token at: {API_TOKEN_URL}",
                jira_type=jira_type,
                api_version=api_version,
            )

        if jira_type == JiraType.SERVER and credentials.has_email_token:
            return _failure(
                ErrorCode.WRONG_AUTH_METHOD_SERVER,
                "Invalid authentication for Jira Server",
                "This appears to be Jira Server/Data Center, not Cloud",
                "Jira Server typically uses username/password or Personal Access Tokens (PAT), not Cloud API tokens.",
                jira_type=jira_type,
                api_version=api_version,
            )

        if credentials.has_email_token:
            return _failure(
                ErrorCode.INVALID_CREDENTIALS,
                "Authentication failed: Invalid email or API token",
                "The provided credentials were rejected by Jira",
                "Verify:\n"
                "1. Email address matches your Atlassian account\n"
                "2. API token is correct and not expired\n"
                f"3. Generate a new token at: {API_TOKEN_URL}",
                jira_type=jira_type,
                api_version=api_version,
            )

        return _failure(
            ErrorCode.AUTHENTICATION_FAILED,
            "Authentication failed",
            "Invalid credentials provided",
            "Check your authentication credentials and try again.",
            jira_type=jira_type,
            api_version=api_version,
        )

    @staticmethod
    def _classify_status(response: httpx.Response, jira_type: JiraType, api_version: str) -> ConnectionResult:
        status = response.status_code
        if status == 404:
            return _failure(
                ErrorCode.API_NOT_FOUND,
                "Jira API endpoint not found",
                "The REST API endpoint returned 404",
                "This might be an incorrect API version. Try switching between Cloud (API v3) and Server (API v2) modes.",
                jira_type=jira_type,
                api_version=api_version,
            )
        if status == 405:
            return _failure(
                ErrorCode.METHOD_NOT_ALLOWED,
                "HTTP method not allowed",
                "The Jira endpoint does not support this request method",
                "This might indicate an incorrect Jira URL or API version mismatch.",
                jira_type=jira_type,
                api_version=api_version,
            )
        return _failure(
            ErrorCode.HTTP_ERROR,
            f"HTTP {status} error",
            error_text(response),
            "Check Jira server logs for more details.",
            jira_type=jira_type,
            api_version=api_version,
        )

    @staticmethod
    def _classify_failure(error: Exception) -> ConnectionResult:
        return _failure(
            ErrorCode.UNEXPECTED_ERROR,
            str(error) or "Unknown connection error",
            repr(error),
            "Check network connectivity and Jira availability. Contact support if the issue persists.",
        )

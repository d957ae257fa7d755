"""Jira URL normalization and deployment type detection."""

import ipaddress
import re
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlsplit

from jira_integration.integrations.errors import URLValidationError
from jira_integration.models.integration import JiraType

CLOUD_DOMAINS = ("atlassian.net", "jira.com")
VENDOR_ROOT_HOSTS = ("jira.atlassian.com",)
MIN_CLOUD_SUBDOMAIN_LENGTH = 2

EXPECTED_FORMAT = "https://yourcompany.atlassian.net or https://jira.yourcompany.com"

_CONTINUE_RE = re.compile(r"[?&]continue=([^&]+)")
_EMBEDDED_HOST_RE = re.compile(r"https?://([^/?#]+)", re.IGNORECASE)
_CLOUD_HOST_RE = re.compile(
    r"([a-z0-9-]+)\.(" + "|".join(re.escape(d) for d in CLOUD_DOMAINS) + r")",
    re.IGNORECASE,
)

_DEPLOYMENT_TYPES = {
    "cloud": JiraType.CLOUD,
    "server": JiraType.SERVER,
    "datacenter": JiraType.DATACENTER,
}


def _has_scheme(url: str) -> bool:
    return url.lower().startswith(("http://", "https://"))


def _hostname(url: str) -> str:
    return (urlsplit(url if "://" in url else f"//{url}").hostname or "").lower()


def is_cloud_host(host: str) -> bool:
    """True for ``<sub>.atlassian.net`` style hosts."""
    host = host.lower()
    return any(host.endswith(f".{domain}") for domain in CLOUD_DOMAINS)


def normalize_url(raw_url: str) -> str:
    """Canonicalize a user supplied Jira URL.

    Raises URLValidationError with a message that can be shown to the user.
    Normalizing an already normalized URL returns it unchanged.
    """
    if not raw_url or not raw_url.strip():
        raise URLValidationError(f"Jira URL is required. Expected format: {EXPECTED_FORMAT}")

    normalized = raw_url.strip().rstrip("/")

    # OAuth redirect wrappers like "...atlassian.net?continue=https%3A%2F%2Fteam.atlassian.net%2F..."
    continue_match = _CONTINUE_RE.search(normalized)
    if continue_match:
        decoded = unquote(continue_match.group(1))
        host_match = _EMBEDDED_HOST_RE.search(decoded)
        if host_match:
            normalized = f"https://{host_match.group(1)}"

    if not _has_scheme(normalized):
        if any(domain in normalized.lower() for domain in CLOUD_DOMAINS):
            cloud_match = _CLOUD_HOST_RE.search(normalized)
            if not cloud_match:
                raise URLValidationError(
                    "Could not extract Jira domain from URL. "
                    "Please use format: https://yourcompany.atlassian.net"
                )
            normalized = f"https://{cloud_match.group(0)}"
        else:
            normalized = f"https://{normalized}"

    try:
        parsed = urlsplit(normalized)
        host = (parsed.hostname or "").lower()
        parsed.port  # raises ValueError on a malformed port
    except ValueError as e:
        raise URLValidationError(
            f"Invalid Jira URL format: {e}. Expected format: {EXPECTED_FORMAT}"
        ) from e

    if not host or " " in normalized:
        raise URLValidationError(
            f"Invalid Jira URL format: {raw_url!r}. Expected format: {EXPECTED_FORMAT}"
        )

    if host in VENDOR_ROOT_HOSTS:
        raise URLValidationError(
            f"Invalid URL: {host} is not a valid Jira instance. "
            "Use your company subdomain (e.g., yourcompany.atlassian.net)"
        )

    if host in CLOUD_DOMAINS:
        raise URLValidationError(
            "Invalid URL: Please include your company subdomain "
            f"(e.g., https://yourcompany.{host}, not https://{host})"
        )

    if is_cloud_host(host):
        subdomain = host.split(".")[0]
        if len(subdomain) < MIN_CLOUD_SUBDOMAIN_LENGTH:
            raise URLValidationError(
                "Invalid URL: Subdomain is too short. Use format: https://yourcompany.atlassian.net"
            )

    return normalized


def detect_jira_type(url: str, server_info: Optional[Dict[str, Any]] = None) -> JiraType:
    """Infer the Jira deployment flavor from the URL and an optional serverInfo document."""
    lowered = url.lower()
    if any(f".{domain}" in lowered for domain in CLOUD_DOMAINS):
        return JiraType.CLOUD

    if server_info:
        deployment_type = str(server_info.get("deploymentType") or "").lower()
        if deployment_type in _DEPLOYMENT_TYPES:
            return _DEPLOYMENT_TYPES[deployment_type]

    host = _hostname(url)
    if host == "localhost":
        return JiraType.SERVER
    try:
        ipaddress.ip_address(host)
        return JiraType.SERVER
    except ValueError:
        pass

    return JiraType.UNKNOWN


def api_version_for(jira_type: JiraType) -> str:
    """Cloud speaks REST v3, everything else v2."""
    return "3" if jira_type == JiraType.CLOUD else "2"

"""Jira client implementation."""

from .auth import build_auth_header
from .base import BaseTrackerClient
from .errors import (
    AuthConfigError,
    AuthenticationError,
    ErrorCode,
    ForbiddenError,
    InactiveIntegrationError,
    InvalidPayloadError,
    IntegrationError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitError,
    TrackerAPIError,
    URLValidationError,
    WebhookVerificationError,
)
from .jira import JiraClient, JiraIssue, JiraProject

__all__ = [
    "build_auth_header",
    "BaseTrackerClient",
    "AuthConfigError",
    "AuthenticationError",
    "ErrorCode",
    "ForbiddenError",
    "InactiveIntegrationError",
    "InvalidPayloadError",
    "IntegrationError",
    "InvalidTransitionError",
    "NotFoundError",
    "RateLimitError",
    "TrackerAPIError",
    "URLValidationError",
    "WebhookVerificationError",
    "JiraClient",
    "JiraIssue",
    "JiraProject",
]

"""Error taxonomy shared by the Jira client, the sync engine and the API layer."""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Machine-readable failure codes."""
    # transport
    URL_INVALID = "URL_INVALID"
    DNS_ERROR = "DNS_ERROR"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    TIMEOUT = "TIMEOUT"
    URL_UNREACHABLE = "URL_UNREACHABLE"
    # auth
    AUTH_CONFIG_ERROR = "AUTH_CONFIG_ERROR"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    WRONG_AUTH_METHOD_CLOUD = "WRONG_AUTH_METHOD_CLOUD"
    WRONG_AUTH_METHOD_SERVER = "WRONG_AUTH_METHOD_SERVER"
    FORBIDDEN = "FORBIDDEN"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    # scope
    NO_PROJECTS = "NO_PROJECTS"
    # protocol
    API_NOT_FOUND = "API_NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    HTTP_ERROR = "HTTP_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    # resource
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    # workflow
    INVALID_TRANSITION = "INVALID_TRANSITION"
    # webhooks
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"


class IntegrationError(Exception):
    """Base integration error, carries a code and an HTTP-style status."""

    code: ErrorCode = ErrorCode.UNEXPECTED_ERROR
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
        upstream_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        # HTTP status Jira answered with, when the error came from a response
        self.upstream_status = upstream_status

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}


class URLValidationError(IntegrationError):
    """The configured Jira URL is malformed or points at the wrong host."""
    code = ErrorCode.URL_INVALID
    status_code = 400


class AuthConfigError(IntegrationError):
    """No usable credential set was supplied."""
    code = ErrorCode.AUTH_CONFIG_ERROR
    status_code = 400


class AuthenticationError(IntegrationError):
    """Authentication failed."""
    code = ErrorCode.AUTHENTICATION_FAILED
    status_code = 401


class ForbiddenError(IntegrationError):
    """Authenticated, but not allowed."""
    code = ErrorCode.FORBIDDEN
    status_code = 403


class NotFoundError(IntegrationError):
    """Requested resource does not exist."""
    code = ErrorCode.NOT_FOUND
    status_code = 404


class InactiveIntegrationError(IntegrationError):
    """Integration exists but is disabled."""
    code = ErrorCode.INACTIVE
    status_code = 404


class InvalidTransitionError(IntegrationError):
    """No workflow transition leads to the requested status."""
    code = ErrorCode.INVALID_TRANSITION
    status_code = 400


class RateLimitError(IntegrationError):
    """Rate limit exceeded."""
    code = ErrorCode.RATE_LIMITED
    status_code = 429


class TrackerAPIError(IntegrationError):
    """Jira answered with an unexpected HTTP error."""
    code = ErrorCode.HTTP_ERROR
    status_code = 502


class WebhookVerificationError(IntegrationError):
    """Webhook signature verification failed."""
    code = ErrorCode.INVALID_SIGNATURE
    status_code = 401


class InvalidPayloadError(IntegrationError):
    """Webhook body is not a JSON object."""
    code = ErrorCode.INVALID_PAYLOAD
    status_code = 400

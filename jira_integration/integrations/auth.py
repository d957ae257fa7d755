"""Authorization header construction."""

import base64

from jira_integration.integrations.errors import AuthConfigError
from jira_integration.models.integration import Credentials


def _basic(user: str, secret: str) -> str:
    token = base64.b64encode(f"{user}:{secret}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def build_auth_header(credentials: Credentials) -> str:
    """Build the Authorization header value for a credential set.

    OAuth tokens win over email/API token, which wins over username/password.
    """
    if credentials.access_token:
        return f"Bearer {credentials.access_token}"

    if credentials.has_email_token:
        return _basic(credentials.email, credentials.api_token)

    if credentials.has_username_password:
        return _basic(credentials.username, credentials.password)

    raise AuthConfigError("No valid authentication credentials provided")

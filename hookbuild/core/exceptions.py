"""
Custom application exceptions.
"""


class IntegrationError(Exception):
    """Base exception for integration errors."""
    pass


class ConfigError(IntegrationError):
    """Configuration is missing or invalid."""
    pass


class MissingCredential(ConfigError):
    """A required credential (client secret, deploy key) is not configured."""
    pass


class MalformedEventError(ConfigError):
    """Webhook payload is missing required fields."""
    pass


class APIError(IntegrationError):
    """External API call failed."""
    pass


class GitHubAPIError(APIError):
    """GitHub API call failed."""
    pass


class OAuthError(IntegrationError):
    """OAuth handshake failed."""
    pass


class StateMismatch(OAuthError):
    """OAuth callback carried a state that is not ours."""
    pass


class TokenExchangeError(OAuthError):
    """Exchanging the authorization code for a token failed."""
    pass


class NotAuthenticated(OAuthError):
    """No authenticated client is available yet."""
    pass


class BuildSubmitError(IntegrationError):
    """Build engine refused or failed to start a build."""
    pass

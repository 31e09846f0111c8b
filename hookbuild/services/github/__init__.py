# GitHub services - GitHub API integration
from .client import GitHubClient
from .integration import GitHubIntegration
from .oauth import OAuthSession
from .registrar import RepositoryRegistrar

__all__ = ["GitHubClient", "GitHubIntegration", "OAuthSession", "RepositoryRegistrar"]

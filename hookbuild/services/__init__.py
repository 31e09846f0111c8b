# Services module - external API integrations
from .github import GitHubClient, GitHubIntegration, OAuthSession, RepositoryRegistrar

__all__ = ["GitHubClient", "GitHubIntegration", "OAuthSession", "RepositoryRegistrar"]

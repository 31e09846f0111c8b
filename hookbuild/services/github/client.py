"""
GitHub API client for repository setup and pull request authorization.
"""

from typing import Any

import httpx

from hookbuild.core.exceptions import GitHubAPIError
from hookbuild.core.logging import get_logger

logger = get_logger(__name__)


def _describe(e: httpx.HTTPError) -> str:
    if isinstance(e, httpx.HTTPStatusError):
        return f"{e.response.status_code}: {e.response.text}"
    return str(e)


class GitHubClient:
    """Authenticated client for the GitHub REST API."""

    BASE_URL = "https://api.github.com"

    def __init__(self, token: str):
        self._token = token
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github.v3+json",
        }

    async def is_collaborator(self, owner: str, repo: str, user: str) -> bool:
        """
        Check whether a user is a collaborator on a repository.

        Returns:
            True on 204, False on 404

        Raises:
            GitHubAPIError: On any other response or transport failure
        """
        url = f"{self.BASE_URL}/repos/{owner}/{repo}/collaborators/{user}"

        async with httpx.AsyncClient() as client:
            try:
                response = await client.get(url, headers=self._headers)
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Failed to check collaborator {user}: {e}") from e

        if response.status_code == 204:
            return True
        if response.status_code == 404:
            return False
        raise GitHubAPIError(
            f"Failed to check collaborator {user}: {response.status_code}: {response.text}"
        )

    async def get_repository(self, owner: str, repo: str) -> dict[str, Any]:
        """
        Get repository metadata.

        Raises:
            GitHubAPIError: If the repository is missing or the call fails
        """
        url = f"{self.BASE_URL}/repos/{owner}/{repo}"

        async with httpx.AsyncClient() as client:
            try:
                response = await client.get(url, headers=self._headers)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Failed to get repository {owner}/{repo}: {_describe(e)}") from e

        return response.json()

    async def list_repositories(self) -> list[dict[str, Any]]:
        """List repositories visible to the authenticated user."""
        url = f"{self.BASE_URL}/user/repos"

        async with httpx.AsyncClient() as client:
            try:
                response = await client.get(url, headers=self._headers, params={"per_page": 100})
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Failed to list repositories: {_describe(e)}") from e

        return response.json()

    async def create_deploy_key(
        self,
        owner: str,
        repo: str,
        title: str,
        key: str,
        read_only: bool = True,
    ) -> dict[str, Any]:
        """
        Add a deploy key to a repository.

        Raises:
            GitHubAPIError: If the call fails; the message carries the
                response body, e.g. "key is already in use"
        """
        url = f"{self.BASE_URL}/repos/{owner}/{repo}/keys"
        data = {"title": title, "key": key, "read_only": read_only}

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(url, headers=self._headers, json=data)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Failed to create deploy key: {_describe(e)}") from e

        return response.json()

    async def create_hook(
        self,
        owner: str,
        repo: str,
        url: str,
        events: list[str],
        secret: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a repository webhook delivering JSON to ``url``.

        Raises:
            GitHubAPIError: If the call fails; the message carries the
                response body, e.g. "Hook already exists"
        """
        hook_config: dict[str, Any] = {"url": url, "content_type": "json"}
        if secret:
            hook_config["secret"] = secret
        data = {"name": "web", "active": True, "config": hook_config, "events": events}

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    f"{self.BASE_URL}/repos/{owner}/{repo}/hooks",
                    headers=self._headers,
                    json=data,
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"Failed to create hook: {_describe(e)}") from e

        return response.json()

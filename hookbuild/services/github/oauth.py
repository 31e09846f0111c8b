"""
OAuth session with GitHub.

One session is created at startup and shared by every handler. It owns the
CSRF state for this process, the access token once obtained, and a one-shot
future that resolves when the authenticated client is installed.
"""

import asyncio
import secrets
from urllib.parse import urlencode

import httpx

from hookbuild.core.cache import TokenCache
from hookbuild.core.exceptions import (
    GitHubAPIError,
    MissingCredential,
    NotAuthenticated,
    StateMismatch,
    TokenExchangeError,
)
from hookbuild.core.logging import get_logger
from hookbuild.services.github.client import GitHubClient

logger = get_logger(__name__)

TOKEN_CACHE_KEY = "github:token"


class OAuthSession:
    """Acquires and holds the single authenticated GitHub client."""

    AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
    TOKEN_URL = "https://github.com/login/oauth/access_token"
    SCOPES = ("repo",)

    def __init__(self, client_id: str, client_secret: str, cache: TokenCache):
        self._client_id = client_id
        self._client_secret = client_secret
        self._cache = cache
        self._state = secrets.token_urlsafe(24)
        self._client: GitHubClient | None = None
        self._ready: asyncio.Future[GitHubClient] | None = None
        self._exchanging = False

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> GitHubClient:
        """Get the authenticated client, raising NotAuthenticated before bootstrap completes."""
        if self._client is None:
            raise NotAuthenticated("GitHub client is not ready")
        return self._client

    def _ready_future(self) -> "asyncio.Future[GitHubClient]":
        if self._ready is None:
            self._ready = asyncio.get_running_loop().create_future()
        return self._ready

    def authorize_url(self) -> str:
        query = urlencode({
            "client_id": self._client_id,
            "scope": " ".join(self.SCOPES),
            "state": self._state,
            "access_type": "offline",
        })
        return f"{self.AUTHORIZE_URL}?{query}"

    def _install_client(self, token: str) -> GitHubClient:
        # the client transitions exactly once per process
        if self._client is not None:
            return self._client
        self._client = GitHubClient(token)
        future = self._ready_future()
        if not future.done():
            future.set_result(self._client)
        logger.info("GitHub client ready")
        return self._client

    async def wait_ready(self) -> GitHubClient:
        """Block until the client is installed. No timeout: a human may be involved."""
        if self._client is not None:
            return self._client
        return await asyncio.shield(self._ready_future())

    async def bootstrap(self) -> GitHubClient:
        """
        Install a client from the cached token, or ask a human to authorize.

        Returns:
            The authenticated client

        Raises:
            MissingCredential: If client id/secret are not configured
        """
        if self._client is not None:
            return self._client

        if not self._client_id or not self._client_secret:
            logger.error("Invalid github configuration, missing client id/secret")
            raise MissingCredential("GitHub client id/secret are not configured")

        token = self._cache.get(TOKEN_CACHE_KEY)
        if token:
            client = self._install_client(token)
        else:
            logger.warning(
                "This app must be authenticated with github, please visit the following URL "
                f"to authenticate this app:\n{self.authorize_url()}"
            )
            logger.info("Waiting for github authentication response...")
            client = await self.wait_ready()
            logger.info("Got authentication response")

        await self._log_repositories(client)
        return client

    async def _log_repositories(self, client: GitHubClient) -> None:
        try:
            repos = await client.list_repositories()
        except GitHubAPIError as e:
            logger.critical(
                f"Couldn't get repos list after authenticating, clear cache and retry: {e}"
            )
            return

        lines = []
        for repo in repos:
            line = repo.get("full_name", "")
            if repo.get("private"):
                line += " (private)"
            if repo.get("fork"):
                line += " (fork)"
            lines.append(line)
        logger.info("Found repositories:\n" + "\n".join(lines))

    async def exchange_code(self, code: str) -> str:
        """
        Exchange an authorization code for an access token.

        Raises:
            TokenExchangeError: If the provider rejects the code or is unreachable
        """
        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "code": code,
        }

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    self.TOKEN_URL,
                    data=data,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise TokenExchangeError(str(e)) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise TokenExchangeError(f"Unreadable token response: {e}") from e
        if not isinstance(payload, dict):
            raise TokenExchangeError("Unreadable token response")
        token = payload.get("access_token")
        if not token:
            # GitHub answers 200 with an error body for bad codes
            raise TokenExchangeError(payload.get("error_description") or payload.get("error") or "no access token")
        return token

    async def handle_callback(self, state: str, code: str) -> GitHubClient:
        """
        Complete the OAuth redirect.

        Raises:
            StateMismatch: If ``state`` is not this session's nonce
            TokenExchangeError: If the code could not be exchanged
        """
        if not secrets.compare_digest((state or "").encode(), self._state.encode()):
            raise StateMismatch("OAuth2 state was incorrect")

        if self._client is not None:
            logger.warning("Ignoring OAuth callback, client already authenticated")
            return self._client

        if self._exchanging:
            raise TokenExchangeError("another OAuth code exchange is in progress")

        self._exchanging = True
        try:
            token = await self.exchange_code(code)
        finally:
            self._exchanging = False
        # only the token of the installed client is cached
        if self._client is None:
            self._cache.store(TOKEN_CACHE_KEY, token)
        return self._install_client(token)

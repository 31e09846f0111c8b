"""
Idempotent repository setup: deploy key and webhook per attached application.
"""

from hookbuild.core.config import AppConfig
from hookbuild.core.exceptions import GitHubAPIError, MissingCredential
from hookbuild.core.logging import get_logger
from hookbuild.services.github.client import GitHubClient

logger = get_logger(__name__)

HOOK_EVENTS = [
    "pull_request",
    "delete",
    "issue_comment",
    "pull_request_review",
    "push",
    "status",
]

KEY_IN_USE = "key is already in use"
HOOK_EXISTS = "Hook already exists"


class RepositoryRegistrar:
    """Makes sure each application's repository can be cloned and notifies us."""

    def __init__(self, client: GitHubClient, server_url: str, webhook_secret: str | None = None):
        self._client = client
        self._server_url = server_url.rstrip("/")
        self._webhook_secret = webhook_secret

    def hook_url(self, app_name: str) -> str:
        return f"{self._server_url}/cb/github/hook/{app_name}"

    async def ensure_deploy_key(self, app_name: str, config: AppConfig) -> None:
        """
        Create the read-only deploy key for an application.

        An already registered key counts as success.

        Raises:
            MissingCredential: If no public key is configured
            GitHubAPIError: If the key could not be created
        """
        if not config.public_key:
            logger.critical(f"({app_name}) No public key available, create one and add it to the configuration")
            raise MissingCredential(f"{app_name}: no public key configured")

        title = f"hookbuild ssh deploy key - {app_name}"
        try:
            await self._client.create_deploy_key(
                config.owner, config.repo, title, config.public_key, read_only=True
            )
        except GitHubAPIError as e:
            if KEY_IN_USE in str(e):
                logger.info(f"({app_name}) Deploy key already installed")
                return
            logger.critical(f"Couldn't create deploy key for {app_name}: {e}")
            raise
        logger.info(f"({app_name}) Created deploy key on {config.owner}/{config.repo}")

    async def ensure_webhook(self, app_name: str, config: AppConfig) -> bool:
        """
        Subscribe the application's hook URL to repository events.

        Failures are logged as warnings and reported through the return value.

        Returns:
            True if the hook exists after the call
        """
        try:
            await self._client.get_repository(config.owner, config.repo)
        except GitHubAPIError:
            logger.warning(
                f"({app_name}) Repository does not exist, owner={config.owner}, repo={config.repo}"
            )
            return False

        try:
            await self._client.create_hook(
                config.owner,
                config.repo,
                self.hook_url(app_name),
                HOOK_EVENTS,
                secret=self._webhook_secret,
            )
        except GitHubAPIError as e:
            if HOOK_EXISTS in str(e):
                return True
            logger.warning(f"Could not create webhook, owner={config.owner}, repo={config.repo}: {e}")
            return False
        logger.info(f"({app_name}) Created webhook {self.hook_url(app_name)}")
        return True

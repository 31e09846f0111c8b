"""
GitHub integration: attaches engine applications and routes pull request events.
"""

import asyncio
import concurrent.futures
from pathlib import Path
from typing import Any, Callable

from hookbuild.core.config import AppConfig, load_app_config
from hookbuild.core.exceptions import GitHubAPIError, MalformedEventError, MissingCredential, NotAuthenticated
from hookbuild.core.logging import get_logger
from hookbuild.models.app import AttachedApp
from hookbuild.models.engine import SIGNAL_BUILD_COMPLETE, SIGNAL_BUILD_PROVISIONING, App, Build
from hookbuild.models.pull import PullRequestSnapshot
from hookbuild.services.github.oauth import OAuthSession
from hookbuild.services.github.registrar import RepositoryRegistrar
from hookbuild.state.pulls import PullRequestTracker

logger = get_logger(__name__)

ACTION_OPENED = "opened"
ACTION_SYNCHRONIZE = "synchronize"
ACTION_CLOSED = "closed"

ConfigLoader = Callable[[str], AppConfig]


class GitHubIntegration:
    """Owns the OAuth session, the tracker and the set of attached applications."""

    identifier = "github"

    def __init__(
        self,
        session: OAuthSession,
        server_url: str,
        config_loader: ConfigLoader,
        webhook_secret: str | None = None,
    ):
        self._session = session
        self._server_url = server_url
        self._config_loader = config_loader
        self._webhook_secret = webhook_secret
        self._apps: dict[str, AttachedApp] = {}
        self.tracker = PullRequestTracker(session)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: set[concurrent.futures.Future] = set()

    @classmethod
    def from_config_dir(
        cls,
        session: OAuthSession,
        server_url: str,
        config_dir: Path,
        webhook_secret: str | None = None,
    ) -> "GitHubIntegration":
        return cls(
            session,
            server_url,
            lambda app_name: load_app_config(config_dir, app_name, cls.identifier),
            webhook_secret=webhook_secret,
        )

    @property
    def session(self) -> OAuthSession:
        return self._session

    @property
    def webhook_secret(self) -> str | None:
        return self._webhook_secret

    def is_provider(self, source: str) -> bool:
        return source == "" or source.startswith("git@github.com:")

    def get_app(self, name: str) -> AttachedApp | None:
        return self._apps.get(name)

    async def attach_to_app(self, app: App) -> AttachedApp:
        """
        Register an application: load its config, set up the repository
        and listen for its build lifecycle signals.

        Repository setup failures are logged; the app is attached regardless
        so events can still be received once the problem is fixed.
        """
        self._loop = asyncio.get_running_loop()
        attached = AttachedApp(app=app, config=self._config_loader(app.name))
        self._apps[app.name] = attached

        try:
            registrar = RepositoryRegistrar(self._session.client, self._server_url, self._webhook_secret)
        except NotAuthenticated:
            logger.critical(f"({app.name}) Not authenticated with github, skipping repository setup")
        else:
            try:
                await registrar.ensure_deploy_key(app.name, attached.config)
            except (MissingCredential, GitHubAPIError):
                # already logged by the registrar
                pass
            await registrar.ensure_webhook(app.name, attached.config)

        app.listen(SIGNAL_BUILD_PROVISIONING, self._on_build_started)
        app.listen(SIGNAL_BUILD_COMPLETE, self._on_build_finished)
        logger.info(f"Attached to app {app.name} ({attached.config.owner}/{attached.config.repo})")
        return attached

    def _schedule(self, coro) -> None:
        # engine callbacks may come from any thread
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    def _on_build_started(self, build: Build) -> None:
        self._schedule(self.tracker.track_build(build))

    def _on_build_finished(self, build: Build) -> None:
        self._schedule(self.tracker.untrack_build(build))

    async def drain(self) -> None:
        """Wait for scheduled ledger updates to finish."""
        if self._pending:
            await asyncio.gather(*(asyncio.wrap_future(f) for f in list(self._pending)))

    async def handle_pull_request_event(self, app_name: str, payload: dict[str, Any]) -> bool:
        """
        Route a ``pull_request`` webhook payload to the tracker.

        Returns:
            False if the action is not one we act on

        Raises:
            KeyError: If the application is not attached
            MalformedEventError: If the payload has no usable pull request
        """
        attached = self._apps[app_name]
        action = payload.get("action")
        if action not in (ACTION_OPENED, ACTION_SYNCHRONIZE, ACTION_CLOSED):
            return False

        try:
            pull = PullRequestSnapshot.from_payload(payload.get("pull_request"))
        except MalformedEventError as e:
            logger.critical(f"({app_name}) {e}")
            raise

        if action == ACTION_OPENED:
            await self.tracker.on_open_or_synchronize(attached, pull)
        elif action == ACTION_SYNCHRONIZE:
            await self.tracker.on_synchronize(attached, pull)
        else:
            await self.tracker.on_closed(attached, pull.id)
        return True

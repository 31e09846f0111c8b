"""
Application factory and main entry point.
"""

import asyncio

from hookbuild.core.cache import TokenCache
from hookbuild.core.config import Settings, load_master_integration_config
from hookbuild.core.exceptions import ConfigError, MissingCredential
from hookbuild.core.logging import setup_logging, get_logger
from hookbuild.models.engine import App, InMemoryApp
from hookbuild.services.github.integration import GitHubIntegration
from hookbuild.services.github.oauth import OAuthSession
from hookbuild.webhooks.server import start_webhook_server

logger = get_logger(__name__)


def create_integration(settings: Settings) -> GitHubIntegration:
    """Create the OAuth session and the integration that shares it."""
    master = load_master_integration_config(settings.config_path)
    client_id = settings.github_client_id or master.get("clientID", "")
    client_secret = settings.github_client_secret or master.get("clientSecret", "")

    session = OAuthSession(client_id, client_secret, TokenCache(settings.cache_file))
    return GitHubIntegration.from_config_dir(
        session,
        settings.http_server_url,
        settings.config_path,
        webhook_secret=settings.webhook_secret,
    )


async def attach_apps(integration: GitHubIntegration, apps: list[App]) -> None:
    for app in apps:
        try:
            await integration.attach_to_app(app)
        except ConfigError as e:
            logger.error(f"Couldn't attach {app.name}: {e}")


async def main(settings: Settings | None = None) -> None:
    """Main application entry point."""
    settings = settings or Settings()
    setup_logging(settings.log_level)
    logger.info("Starting hookbuild...")

    integration = create_integration(settings)

    # the OAuth callback is served by the same server, so start it first
    runner = await start_webhook_server(integration, settings.webhook_host, settings.webhook_port)

    try:
        try:
            await integration.session.bootstrap()
        except MissingCredential:
            logger.error("Continuing without GitHub access")

        await attach_apps(integration, [InMemoryApp(name) for name in settings.app_names])
        logger.info("Webhook integration is running.")

        stop_signal = asyncio.Event()
        try:
            await stop_signal.wait()
        except asyncio.CancelledError:
            pass
    finally:
        await runner.cleanup()

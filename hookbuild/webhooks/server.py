"""
Webhook server setup.
"""

from aiohttp import web

from hookbuild.core.logging import get_logger
from hookbuild.services.github.integration import GitHubIntegration
from hookbuild.webhooks.github import INTEGRATION_KEY, handle_github_auth, handle_github_event

logger = get_logger(__name__)


def create_web_app(integration: GitHubIntegration) -> web.Application:
    """Build the aiohttp application serving the GitHub callbacks."""
    app = web.Application()
    app[INTEGRATION_KEY] = integration
    app.router.add_get("/cb/auth/github", handle_github_auth)
    app.router.add_post("/cb/github/hook/{app_name}", handle_github_event)
    return app


async def start_webhook_server(
    integration: GitHubIntegration,
    host: str = "0.0.0.0",
    port: int = 8081,
) -> web.AppRunner:
    """
    Start the webhook server.

    Args:
        integration: Integration the handlers dispatch to
        host: Host to bind to
        port: Port to bind to

    Returns:
        The runner, for cleanup on shutdown
    """
    runner = web.AppRunner(create_web_app(integration))
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Webhook server started on {host}:{port}")
    return runner

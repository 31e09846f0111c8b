"""
GitHub webhook and OAuth callback handlers.
"""

import hashlib
import hmac
import json

from aiohttp import web

from hookbuild.core.exceptions import MalformedEventError, StateMismatch, TokenExchangeError
from hookbuild.core.logging import get_logger
from hookbuild.services.github.integration import GitHubIntegration

logger = get_logger(__name__)

INTEGRATION_KEY = web.AppKey("integration", GitHubIntegration)

KNOWN_EVENTS = frozenset({
    "pull_request",
    "push",
    "issue_comment",
    "pull_request_review",
    "delete",
    "status",
})


def _verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    if not signature:
        return False
    expected = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature, expected)


async def handle_github_auth(request: web.Request) -> web.Response:
    """Handle the OAuth redirect from GitHub."""
    integration = request.app[INTEGRATION_KEY]
    state = request.query.get("state", "")
    code = request.query.get("code", "")

    try:
        await integration.session.handle_callback(state, code)
    except StateMismatch:
        logger.warning("OAuth callback with incorrect state")
        return web.Response(
            text="OAuth2 state was incorrect, something bad happened between Github and us"
        )
    except TokenExchangeError as e:
        logger.error(f"OAuth code exchange failed: {e}")
        return web.Response(
            text=f"Error exchanging OAuth code, something bad happened between Github and us: {e}"
        )

    return web.Response(text="Thanks! you can close this tab now.")


async def handle_github_event(request: web.Request) -> web.Response:
    """Handle a webhook delivery for one application."""
    integration = request.app[INTEGRATION_KEY]
    app_name = request.match_info["app_name"]

    body = await request.read()

    if integration.webhook_secret:
        signature = request.headers.get("X-Hub-Signature-256")
        if not _verify_signature(integration.webhook_secret, body, signature):
            return web.Response(status=401, text="Invalid signature")

    if integration.get_app(app_name) is None:
        logger.warning(f"Webhook for unknown app: {app_name}")
        return web.Response(status=404, text="Unknown app")

    try:
        payload = json.loads(body)
    except ValueError:
        return web.Response(status=400, text="Invalid JSON")
    if not isinstance(payload, dict):
        return web.Response(status=400, text="Invalid JSON")

    event = request.headers.get("X-GitHub-Event") or payload.get("event")
    if event not in KNOWN_EVENTS:
        logger.info(f"({app_name}) Unknown event type: {event}")
        return web.Response(status=200, text="Ignored event")
    if event != "pull_request":
        return web.Response(status=200, text="Ignored event")

    try:
        handled = await integration.handle_pull_request_event(app_name, payload)
    except MalformedEventError:
        # already logged; a retry would not help
        return web.Response(status=200, text="Ignored event")

    if not handled:
        return web.Response(status=200, text="Ignored event")
    return web.Response(status=200, text="Processed")

"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import pytest
from unittest.mock import AsyncMock, MagicMock

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def mock_env(monkeypatch, tmp_path):
    """Set up test environment variables."""
    monkeypatch.setenv("GITHUB_CLIENT_ID", "client_123")
    monkeypatch.setenv("GITHUB_CLIENT_SECRET", "secret_456")
    monkeypatch.setenv("HTTP_SERVER_URL", "https://ci.example.com/")
    monkeypatch.setenv("WEBHOOK_SECRET", "")
    monkeypatch.setenv("CACHE_PATH", str(tmp_path / "cache.json"))
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("APPS", "web, api")


@pytest.fixture(autouse=True)
def clear_config_cache():
    from hookbuild.core.config import clear_config_cache
    clear_config_cache()
    yield
    clear_config_cache()


# ============================================================================
# Payload Helpers
# ============================================================================

def make_pull_payload(
    pull_id: int = 99002,
    number: int = 42,
    base_ref: str = "master",
    head_sha: str = "abc123",
    author: str = "alice",
) -> dict:
    """Build a GitHub pull_request object."""
    return {
        "id": pull_id,
        "number": number,
        "title": "Add feature",
        "html_url": f"https://github.com/acme/widgets/pull/{number}",
        "user": {"login": author},
        "head": {
            "ref": "feature",
            "sha": head_sha,
            "repo": {
                "name": "widgets",
                "owner": {"login": author},
                "ssh_url": f"git@github.com:{author}/widgets.git",
            },
        },
        "base": {
            "ref": base_ref,
            "sha": "base000",
            "repo": {
                "name": "widgets",
                "owner": {"login": "acme"},
                "ssh_url": "git@github.com:acme/widgets.git",
            },
        },
    }


def make_snapshot(**kwargs):
    from hookbuild.models.pull import PullRequestSnapshot
    return PullRequestSnapshot.from_payload(make_pull_payload(**kwargs))


@pytest.fixture
def pull_payload():
    return make_pull_payload


@pytest.fixture
def snapshot():
    return make_snapshot


# ============================================================================
# Mock Fixtures
# ============================================================================

@pytest.fixture
def github_api():
    """Mock authenticated GitHubClient; everyone is a collaborator."""
    client = MagicMock()
    client.is_collaborator = AsyncMock(return_value=True)
    client.get_repository = AsyncMock(return_value={"full_name": "acme/widgets"})
    client.list_repositories = AsyncMock(return_value=[])
    client.create_deploy_key = AsyncMock(return_value={"id": 1})
    client.create_hook = AsyncMock(return_value={"id": 2})
    return client


@pytest.fixture
def token_cache(tmp_path):
    from hookbuild.core.cache import TokenCache
    return TokenCache(tmp_path / "cache.json")


@pytest.fixture
def session(token_cache):
    """OAuthSession that has not been authorized yet."""
    from hookbuild.services.github.oauth import OAuthSession
    return OAuthSession("client_123", "secret_456", token_cache)


@pytest.fixture
def ready_session(session, github_api):
    """OAuthSession with the mock client installed."""
    session._client = github_api
    return session


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def app_config():
    from hookbuild.core.config import AppConfig
    return AppConfig.model_validate({
        "owner": "acme",
        "repo": "widgets",
        "ignoredBranches": ["release"],
        "publicKey": "ssh-ed25519 AAAA test",
        "cancelOnNewCommit": True,
        "mergeOnPass": True,
    })


@pytest.fixture
def engine():
    from hookbuild.models.engine import InMemoryApp
    return InMemoryApp("web")


@pytest.fixture
def attached(engine, app_config):
    from hookbuild.models.app import AttachedApp
    return AttachedApp(app=engine, config=app_config)


@pytest.fixture
def tracker(ready_session):
    from hookbuild.state.pulls import PullRequestTracker
    return PullRequestTracker(ready_session)


@pytest.fixture
def integration(ready_session, app_config):
    from hookbuild.services.github.integration import GitHubIntegration
    return GitHubIntegration(
        ready_session,
        "https://ci.example.com",
        lambda app_name: app_config,
    )

"""
Application configuration using pydantic-settings.
All environment variables are validated and typed.
"""

import json
import os
import threading
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from hookbuild.core.exceptions import ConfigError


class Settings(BaseSettings):
    """Process settings loaded from environment variables."""

    # OAuth application credentials (may also come from hookbuild.json)
    github_client_id: str = ""
    github_client_secret: str = ""

    # Public URL the provider can reach us on, used to build hook URLs
    http_server_url: str = "http://localhost:8081"

    # Webhook server
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 8081
    webhook_secret: str | None = None

    # Storage
    cache_path: str = "~/.cache/hookbuild/cache.json"
    config_dir: str = "~/.config/hookbuild"

    # Applications to attach (comma/space separated)
    apps: str = ""

    log_level: str = "INFO"

    @field_validator("http_server_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return str(value).strip().rstrip("/")

    @field_validator("webhook_secret", mode="before")
    @classmethod
    def _normalize_secret(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @property
    def app_names(self) -> list[str]:
        """Get parsed application names."""
        return [name for name in self.apps.replace(",", " ").split() if name]

    @property
    def cache_file(self) -> Path:
        return Path(self.cache_path).expanduser()

    @property
    def config_path(self) -> Path:
        return Path(self.config_dir).expanduser()

    model_config = {
        "env_file": os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), ".env"),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


class AppConfig(BaseModel):
    """Per-application GitHub configuration, read-only after attach."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    client_id: str = Field("", alias="clientID")
    client_secret: str = Field("", alias="clientSecret")

    owner: str = ""
    repo: str = ""
    ignored_branches: tuple[str, ...] = Field((), alias="ignoredBranches")
    public_key: str = Field("", alias="publicKey")

    build_branches: tuple[str, ...] = Field((), alias="buildBranches")
    cancel_on_new_commit: bool = Field(False, alias="cancelOnNewCommit")
    merge_on_pass: bool = Field(False, alias="mergeOnPass")
    merge_on_pass_auth_words: tuple[str, ...] = Field((), alias="mergeOnPassAuthWords")

    def is_ignored_branch(self, branch: str) -> bool:
        return branch in self.ignored_branches


MASTER_CONFIG = "hookbuild.json"

_config_cache: dict[Path, dict[str, Any]] = {}
_config_cache_lock = threading.Lock()


def _load_json(path: Path) -> dict[str, Any]:
    with _config_cache_lock:
        cached = _config_cache.get(path)
    if cached is not None:
        return cached

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Couldn't read {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Expected a JSON object in {path}")

    with _config_cache_lock:
        _config_cache.setdefault(path, raw)
        return _config_cache[path]


def clear_config_cache() -> None:
    with _config_cache_lock:
        _config_cache.clear()


def _integration_section(conf: dict[str, Any], integration: str) -> dict[str, Any]:
    integrations = conf.get("Integrations")
    if not isinstance(integrations, dict):
        return {}
    section = integrations.get(integration)
    return section if isinstance(section, dict) else {}


def load_master_integration_config(config_dir: Path, integration: str = "github") -> dict[str, Any]:
    """Return the integration section of the master config, or {} when absent."""
    path = Path(config_dir) / MASTER_CONFIG
    if not path.is_file():
        return {}
    return _integration_section(_load_json(path), integration)


def load_app_config(config_dir: Path, app_name: str, integration: str = "github") -> AppConfig:
    """
    Load the integration config for an application.

    The app's ``Integrations.<integration>`` section is laid over the
    master file's section of the same name.

    Args:
        config_dir: Directory holding hookbuild.json and apps/
        app_name: Application name
        integration: Integration section to read

    Returns:
        Parsed AppConfig

    Raises:
        ConfigError: If the app config is missing or invalid
    """
    merged = dict(load_master_integration_config(config_dir, integration))

    app_path = Path(config_dir) / "apps" / app_name / "config.json"
    if not app_path.is_file():
        raise ConfigError(f"No config for app {app_name} at {app_path}")
    merged.update(_integration_section(_load_json(app_path), integration))

    try:
        return AppConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid {integration} config for {app_name}: {e}") from e

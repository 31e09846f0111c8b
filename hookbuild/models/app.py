"""
An engine application together with its GitHub configuration.
"""

from dataclasses import dataclass

from hookbuild.core.config import AppConfig
from hookbuild.models.engine import App


@dataclass(frozen=True)
class AttachedApp:
    app: App
    config: AppConfig

    @property
    def name(self) -> str:
        return self.app.name

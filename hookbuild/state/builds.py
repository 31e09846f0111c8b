"""
Ledger of build handles this integration is interested in.
"""

from hookbuild.core.logging import get_logger
from hookbuild.models.engine import Build

logger = get_logger(__name__)


class BuildLedger:
    """
    Builds keyed by token, each holding one reference for as long as it
    stays in the ledger.

    Not locked on its own: callers hold the tracker's write lock.
    """

    def __init__(self):
        self._builds: dict[str, Build] = {}

    def track(self, build: Build) -> bool:
        """Add a build; returns False if its token is already tracked."""
        token = build.token
        if token in self._builds:
            return False
        build.ref()
        self._builds[token] = build
        logger.debug(f"Tracking build {token}")
        return True

    def untrack(self, build: Build) -> bool:
        """Remove a build by token; returns False if it was not tracked."""
        tracked = self._builds.pop(build.token, None)
        if tracked is None:
            return False
        tracked.unref()
        logger.debug(f"Untracked build {build.token}")
        return True

    def get(self, token: str) -> Build | None:
        return self._builds.get(token)

    def tokens(self) -> list[str]:
        return list(self._builds.keys())

    def __contains__(self, token: str) -> bool:
        return token in self._builds

    def __len__(self) -> int:
        return len(self._builds)

"""
Contract with the build engine, plus a non-executing in-memory engine.
"""

import itertools
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable

from hookbuild.core.exceptions import BuildSubmitError
from hookbuild.core.logging import get_logger

logger = get_logger(__name__)

SIGNAL_BUILD_PROVISIONING = "build_provisioning"
SIGNAL_BUILD_COMPLETE = "build_complete"


@dataclass
class BuildConfig:
    """Everything the engine needs to start a build."""

    title: str = ""
    url: str = ""
    head_repo: str = ""
    head_branch: str = ""
    head_hash: str = ""
    base_repo: str = ""
    base_branch: str = ""
    base_hash: str = ""
    group: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    def set_metadata(self, key: str, value: str) -> None:
        self.metadata[key] = value

    def get_metadata(self, key: str) -> str:
        return self.metadata.get(key, "")


@runtime_checkable
class Build(Protocol):
    """Handle on a build owned by the engine."""

    @property
    def token(self) -> str: ...

    def stop(self) -> None: ...

    def ref(self) -> None: ...

    def unref(self) -> None: ...

    def metadata(self, key: str) -> str: ...


BuildListener = Callable[[Build], None]


@runtime_checkable
class App(Protocol):
    """An application hosted by the build engine."""

    @property
    def name(self) -> str: ...

    def submit(self, group: str, config: BuildConfig) -> str: ...

    def lookup(self, token: str) -> Build | None: ...

    def listen(self, signal: str, callback: BuildListener) -> None: ...


class InMemoryBuild:
    """Build handle that records lifecycle calls instead of running anything."""

    def __init__(self, token: str, config: BuildConfig):
        self._token = token
        self.config = config
        self.refs = 0
        self.stopped = False

    @property
    def token(self) -> str:
        return self._token

    def stop(self) -> None:
        self.stopped = True

    def ref(self) -> None:
        self.refs += 1

    def unref(self) -> None:
        self.refs -= 1

    def metadata(self, key: str) -> str:
        return self.config.get_metadata(key)

    def __repr__(self) -> str:
        return f"InMemoryBuild({self._token!r}, group={self.config.group!r})"


class InMemoryApp:
    """
    Application that accepts builds and keeps them in memory.

    Used when no real engine is plugged in, and by tests. Listeners are
    fired synchronously by ``emit``.
    """

    def __init__(self, name: str):
        self._name = name
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._builds: dict[str, InMemoryBuild] = {}
        self._listeners: dict[str, list[BuildListener]] = defaultdict(list)
        self.fail_submissions = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def builds(self) -> list[InMemoryBuild]:
        with self._lock:
            return list(self._builds.values())

    def submit(self, group: str, config: BuildConfig) -> str:
        if self.fail_submissions:
            raise BuildSubmitError(f"{self._name}: submissions disabled")
        with self._lock:
            token = f"{self._name}-{next(self._counter)}"
            self._builds[token] = InMemoryBuild(token, config)
        logger.info(f"Accepted build {token} (group {group})")
        return token

    def lookup(self, token: str) -> InMemoryBuild | None:
        if not token:
            return None
        with self._lock:
            return self._builds.get(token)

    def listen(self, signal: str, callback: BuildListener) -> None:
        self._listeners[signal].append(callback)

    def emit(self, signal: str, build: Build) -> None:
        for callback in list(self._listeners[signal]):
            callback(build)

"""
Small persistent key/value cache backed by a JSON file.
"""

import json
import os
import tempfile
import threading
from pathlib import Path

from hookbuild.core.logging import get_logger

logger = get_logger(__name__)


class TokenCache:
    """Persists string values (e.g. the OAuth token) across restarts."""

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable cache {self._path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> str:
        """Return the cached value, or an empty string when absent."""
        with self._lock:
            value = self._read().get(key, "")
        return value if isinstance(value, str) else ""

    def store(self, key: str, value: str) -> None:
        """Store a value and atomically rewrite the cache file."""
        with self._lock:
            data = self._read()
            data[key] = value
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".cache-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, indent=2)
                os.replace(tmp, self._path)
            except OSError:
                os.unlink(tmp)
                raise

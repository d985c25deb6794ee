import asyncio
import json
import logging
import os
import tempfile
import time
from typing import Any, Dict, Optional

from config.constants import DEFAULT_DEBOUNCE_MS, STORAGE_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


# =====================================================
# STORAGE BACKENDS (string key -> string value)
# =====================================================

class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class JsonFileStorage(MemoryStorage):
    """Local storage persisted as one JSON object on disk."""

    def __init__(self, path: str):
        self.path = path
        initial = {}
        if os.path.exists(path):
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    initial = json.load(fh)
            except (OSError, ValueError):
                logger.exception("SESSION_FILE_UNREADABLE path=%s", path)
                initial = {}
        super().__init__(initial)

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        self._save()

    def remove(self, key: str) -> None:
        super().remove(key)
        self._save()

    def _save(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".session-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError):
            os.unlink(tmp_path)
            raise


# =====================================================
# SESSION STORE
# =====================================================

class SessionStore:
    """
    JSON snapshot layer over a storage backend.

    Debounced writes coalesce rapid updates of one key into a single write.
    Pending values are served from a short-lived memory cache so reads never
    see stale data. Call flush_pending_writes() before clearing or teardown.
    """

    def __init__(self, storage=None, *, cache_ttl: float = STORAGE_CACHE_TTL_SECONDS, clock=time.monotonic):
        self.storage = storage if storage is not None else MemoryStorage()
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._cache: Dict[str, tuple] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    # ---------- writes ----------

    def set_item_debounced(self, key: str, value: Any, delay_ms: int = DEFAULT_DEBOUNCE_MS) -> None:
        existing = self._timers.pop(key, None)
        if existing:
            existing.cancel()

        self._cache[key] = (value, self._clock())

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no event loop to schedule on
            self._write(key, value)
            return

        self._timers[key] = loop.call_later(delay_ms / 1000, self._commit, key)

    def set_item_immediate(self, key: str, value: Any) -> None:
        existing = self._timers.pop(key, None)
        if existing:
            existing.cancel()
        self._cache[key] = (value, self._clock())
        self._write(key, value)

    def remove_item(self, key: str) -> None:
        timer = self._timers.pop(key, None)
        if timer:
            timer.cancel()
        self._cache.pop(key, None)
        try:
            self.storage.remove(key)
        except OSError:
            logger.exception("STORAGE_REMOVE_ERROR key=%s", key)

    def flush_pending_writes(self) -> None:
        for key, timer in list(self._timers.items()):
            timer.cancel()
            cached = self._cache.get(key)
            if cached:
                self._write(key, cached[0])
        self._timers.clear()

    @property
    def pending_keys(self):
        return list(self._timers)

    # ---------- reads ----------

    def get_item(self, key: str) -> Any:
        cached = self._cache.get(key)
        if cached and (key in self._timers or self._clock() - cached[1] < self.cache_ttl):
            return cached[0]

        raw = self.storage.get(key)
        if raw is None:
            return None

        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("STORAGE_CORRUPT_VALUE key=%s", key)
            return None

        self._cache[key] = (value, self._clock())
        return value

    def clear_cache(self) -> None:
        self._cache.clear()

    # ---------- internals ----------

    def _commit(self, key: str) -> None:
        self._timers.pop(key, None)
        cached = self._cache.get(key)
        if cached:
            self._write(key, cached[0])

    def _write(self, key: str, value: Any) -> None:
        try:
            self.storage.set(key, json.dumps(value))
        except (OSError, TypeError, ValueError):
            logger.exception("STORAGE_WRITE_ERROR key=%s", key)

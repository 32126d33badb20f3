"""
Durable stores for the last known AdvertisingInfo.

Provides InMemStore (in-memory), FileStore (JSON file), RedisStore, and the
AdvertisingInfoStore protocol. Every backend holds the same two keys and
replaces or removes both of them in a single update.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

try:
    import redis
except ImportError:
    redis = None  # type: ignore

from .info import AdvertisingInfo

logger = logging.getLogger(__name__)

PREFERENCES_NAME = "TwitterAdvertisingInfoPreferences"
PREFKEY_ADVERTISING_ID = "advertising_id"
PREFKEY_LIMIT_AD_TRACKING = "limit_ad_tracking_enabled"


class StoreWriteError(RuntimeError):
    """Raised when a store could not apply a write."""


# ============================================================================
# Store Protocol - Common interface for all backends
# ============================================================================


class AdvertisingInfoStore(Protocol):
    """
    Protocol for durable advertising info stores.

    All stores (InMemStore, FileStore, RedisStore) implement these methods so
    the provider can be handed any of them.

    Example:
        class MyStore:
            def read(self) -> tuple[str, bool]: ...
            def write(self, info: AdvertisingInfo | None) -> None: ...
    """

    def read(self) -> tuple[str, bool]:
        """Return (advertising_id, limit_ad_tracking_enabled), ("", False) if absent."""
        ...

    def write(self, info: AdvertisingInfo | None) -> None:
        """
        Replace both keys with info, or remove both keys when info is None.
        Either both keys change or neither does.
        """
        ...


def validate_store(store: Any) -> bool:
    """
    Validate that an object implements the AdvertisingInfoStore protocol.
    Useful for debugging custom store implementations.

    Returns:
        True if valid, False otherwise
    """
    required_methods = ["read", "write"]
    return all(
        hasattr(store, method) and callable(getattr(store, method))
        for method in required_methods
    )


# ============================================================================
# InMemStore - In-memory storage
# ============================================================================


class InMemStore:
    """
    Thread-safe in-memory store.

    Attributes:
        _data: key map, either empty or holding both keys
        _lock: re-entrant lock to protect concurrent access
        write_count: number of writes applied so far
    """

    def __init__(self, info: AdvertisingInfo | None = None):
        self._data: dict[str, Any] = {}
        self._lock = threading.RLock()
        self.write_count = 0
        if info is not None:
            self._data = _to_mapping(info)

    def read(self) -> tuple[str, bool]:
        with self._lock:
            return (
                self._data.get(PREFKEY_ADVERTISING_ID, ""),
                self._data.get(PREFKEY_LIMIT_AD_TRACKING, False),
            )

    def write(self, info: AdvertisingInfo | None) -> None:
        """Swap in a new key map (empty when info is None)."""
        data = _to_mapping(info) if info is not None else {}
        with self._lock:
            self._data = data
            self.write_count += 1

    def keys(self) -> list[str]:
        """Keys currently held."""
        with self._lock:
            return sorted(self._data)


# ============================================================================
# FileStore - JSON file storage
# ============================================================================


class FileStore:
    """
    Store backed by a small JSON file.

    Writes go to a temp file in the same directory which is then renamed over
    the target, so readers see either the previous or the new pair.

    Example:
        store = FileStore(Path.home() / ".config" / "app" / "adinfo.json")
    """

    def __init__(self, path: str | os.PathLike[str] | None = None):
        """
        Initialize file store.

        Args:
            path: JSON file location, defaults to ./TwitterAdvertisingInfoPreferences.json
        """
        self.path = Path(path) if path is not None else Path(f"{PREFERENCES_NAME}.json")
        self._lock = threading.RLock()

    def read(self) -> tuple[str, bool]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return "", False
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read advertising info from {self.path}: {e}")
            return "", False

        if not isinstance(data, dict):
            return "", False
        advertising_id = data.get(PREFKEY_ADVERTISING_ID)
        if not isinstance(advertising_id, str):
            # null or hand-edited values never count as a stored identifier
            return "", False
        return advertising_id, data.get(PREFKEY_LIMIT_AD_TRACKING) is True

    def write(self, info: AdvertisingInfo | None) -> None:
        with self._lock:
            try:
                if info is None:
                    self.path.unlink(missing_ok=True)
                    return

                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(
                    dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        json.dump(_to_mapping(info), f)
                    os.replace(tmp_path, self.path)
                except BaseException:
                    Path(tmp_path).unlink(missing_ok=True)
                    raise
            except OSError as e:
                raise StoreWriteError(f"File store write failed: {e}") from e


# ============================================================================
# RedisStore - Redis-backed storage
# ============================================================================


class RedisStore:
    """
    Redis-backed store.
    Both keys are read with one MGET and written inside one MULTI/EXEC.

    Example:
        import redis
        client = redis.Redis(host='localhost', port=6379)
        store = RedisStore(client, prefix="adinfo:")
    """

    def __init__(self, redis_client: Any, prefix: str = ""):
        """
        Initialize Redis store.

        Args:
            redis_client: Redis client instance
            prefix: Key prefix for namespacing
        """
        if redis is None:
            raise ImportError("redis package required. Install: pip install redis")
        self.client = redis_client
        self.prefix = prefix

    def _make_key(self, key: str) -> str:
        """Add prefix to key."""
        return f"{self.prefix}{key}"

    def read(self) -> tuple[str, bool]:
        try:
            raw_id, raw_limit = self.client.mget(
                self._make_key(PREFKEY_ADVERTISING_ID),
                self._make_key(PREFKEY_LIMIT_AD_TRACKING),
            )
        except Exception as e:
            logger.warning(f"Redis read failed: {e}")
            return "", False

        advertising_id = _decode(raw_id) if raw_id is not None else ""
        limit = _decode(raw_limit) == "1" if raw_limit is not None else False
        return advertising_id, limit

    def write(self, info: AdvertisingInfo | None) -> None:
        id_key = self._make_key(PREFKEY_ADVERTISING_ID)
        limit_key = self._make_key(PREFKEY_LIMIT_AD_TRACKING)
        try:
            pipe = self.client.pipeline(transaction=True)
            if info is None:
                pipe.delete(id_key, limit_key)
            else:
                pipe.mset(
                    {
                        id_key: info.advertising_id,
                        limit_key: "1" if info.limit_ad_tracking_enabled else "0",
                    }
                )
            pipe.execute()
        except Exception as e:
            raise StoreWriteError(f"Redis write failed: {e}") from e


def _to_mapping(info: AdvertisingInfo) -> dict[str, Any]:
    return {
        PREFKEY_ADVERTISING_ID: info.advertising_id,
        PREFKEY_LIMIT_AD_TRACKING: info.limit_ad_tracking_enabled,
    }


def _decode(raw: Any) -> str:
    return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)

"""
Storage backends for usage limiter state.

Provides an abstract key-value interface and implementations for keeping usage
counters. Values are strings; the limiter owns their encoding.
"""
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """
    Abstract storage interface for usage limiter state.

    Backends must survive an application reload when the deployment needs
    counters to persist (file or Redis); the in-memory backend does not.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Get value for a key.

        Args:
            key: Storage key

        Returns:
            Stored value or None if not found
        """

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Set value for a key.

        Args:
            key: Storage key
            value: Value to store
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """
        Delete a key.

        Args:
            key: Storage key to delete
        """

    @abstractmethod
    def clear(self) -> None:
        """Clear all stored data."""


class InMemoryStorage(KeyValueStore):
    """
    In-memory storage backend.

    Thread-safe with a lock for concurrent access. Data is lost on process
    restart.
    """

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def get_stats(self) -> dict:
        """Get storage statistics (for monitoring/debugging)."""
        with self._lock:
            return {"total_keys": len(self._data)}


class JSONFileStorage(KeyValueStore):
    """
    File-backed storage holding every key in one JSON document.

    The whole document is rewritten atomically on each change, so counters
    survive restarts. A missing or corrupt file starts empty.
    """

    def __init__(self, path: Union[str, Path]):
        """
        Initialize file storage.

        Args:
            path: Location of the JSON file; parent directories are created
        """
        self.path = Path(path)
        self._lock = threading.RLock()
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read usage store {self.path}: {e}. Starting empty.")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Usage store {self.path} is not a JSON object. Starting empty.")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _flush(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Could not write usage store {self.path}: {e}")

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._flush()


class RedisStorage(KeyValueStore):
    """
    Redis storage backend for usage counters.

    Requires redis-py (``pip install prepgen[redis]``). Keys are namespaced
    so the store can share a database with other data. Redis errors are logged
    and reads degrade to "not found".
    """

    KEY_PREFIX = "prepgen:usage:"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: Optional[str] = None,
        socket_timeout: float = 5.0,
        client=None,
    ):
        """
        Initialize Redis storage.

        Args:
            redis_url: Redis connection URL
            key_prefix: Optional custom prefix for keys
            socket_timeout: Timeout for socket operations in seconds
            client: Pre-built redis client (used instead of ``redis_url``)

        Raises:
            ImportError: If redis-py is not installed
        """
        try:
            import redis  # type: ignore[import-untyped]
        except ImportError:
            raise ImportError(
                "redis-py is required for RedisStorage. "
                "Install it with: pip install redis"
            )

        self._redis_errors = (redis.RedisError,)
        self._key_prefix = key_prefix or self.KEY_PREFIX
        self._redis = client or redis.Redis.from_url(
            redis_url, socket_timeout=socket_timeout, decode_responses=True
        )

    def _make_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            value = self._redis.get(self._make_key(key))
        except self._redis_errors as e:
            logger.error(f"Redis error during get({key}): {e}")
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self._redis.set(self._make_key(key), value)
        except self._redis_errors as e:
            logger.error(f"Redis error during set({key}): {e}")

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(self._make_key(key))
        except self._redis_errors as e:
            logger.error(f"Redis error during delete({key}): {e}")

    def clear(self) -> None:
        """Clear keys under this store's prefix only."""
        try:
            keys = list(self._redis.scan_iter(match=f"{self._key_prefix}*", count=100))
            if keys:
                self._redis.delete(*keys)
        except self._redis_errors as e:
            logger.error(f"Redis error during clear(): {e}")

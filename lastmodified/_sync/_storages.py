from __future__ import annotations

import logging
import os
import re
import time
import typing as tp
from collections import OrderedDict
from pathlib import Path

import threading

try:
    import sqlite3
except ImportError:  # pragma: no cover
    sqlite3 = None  # type: ignore

from .._exceptions import StorageError
from .._utils import ensure_cache_dict, float_seconds_to_int_milliseconds

logger = logging.getLogger("lastmodified.storages")

__all__ = (
    "BaseStorage",
    "FileStorage",
    "RedisStorage",
    "SQLiteStorage",
    "InMemoryStorage",
)

try:
    import redis
except ImportError:  # pragma: no cover
    redis = None  # type: ignore

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_\-]+$")


def expiry_for(ttl: tp.Union[int, float]) -> float:
    """Absolute expiry of an entry. Zero means the entry never expires."""
    return time.time() + ttl if ttl > 0 else 0.0


def is_expired(expires_at: tp.Optional[float]) -> bool:
    return bool(expires_at) and tp.cast(float, expires_at) <= time.time()


class BaseStorage:
    """
    Key/value store for rendered page bodies.

    A `ttl` of 0 keeps the entry until it is removed or evicted.
    """

    def get(self, key: str) -> tp.Optional[bytes]:
        raise NotImplementedError()

    def set(self, key: str, value: bytes, ttl: tp.Union[int, float] = 0) -> None:
        raise NotImplementedError()

    def remove(self, key: str) -> None:
        raise NotImplementedError()

    def close(self) -> None:
        raise NotImplementedError()


class FileStorage(BaseStorage):
    """
    A simple file storage, one file per key.

    :param base_path: A storage base path where the pages should be saved, defaults to `.cache/lastmodified`
    :type base_path: tp.Optional[Path], optional
    """

    def __init__(self, base_path: tp.Optional[tp.Union[str, Path]] = None) -> None:
        self._base_path = ensure_cache_dict(Path(base_path) if base_path is not None else None)
        self._lock = threading.Lock()

    def _path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise StorageError(f"Invalid cache key {key!r}")
        return self._base_path / key

    def get(self, key: str) -> tp.Optional[bytes]:
        """
        Retrieves the page body stored under the key.

        :param key: The page cache key
        :type key: str
        :return: The stored bytes, or None when nothing or only an expired entry is stored.
        :rtype: tp.Optional[bytes]
        """

        path = self._path_for(key)

        with self._lock:
            if not path.is_file():
                return None
            try:
                with open(path, "rb") as f:
                    raw = f.read()
            except OSError as exc:
                raise StorageError(f"Could not read cache file {path}") from exc

        header, _, value = raw.partition(b"\n")
        try:
            expires_at = float(header)
        except ValueError:
            logger.warning("Ignoring corrupted cache file: %s", path)
            return None

        if is_expired(expires_at):
            self.remove(key)
            return None
        return value

    def set(self, key: str, value: bytes, ttl: tp.Union[int, float] = 0) -> None:
        """
        Stores the page body under the key.

        :param key: The page cache key
        :type key: str
        :param value: The page body
        :type value: bytes
        :param ttl: Seconds to keep the entry, 0 keeps it forever
        :type ttl: tp.Union[int, float]
        """

        path = self._path_for(key)
        data = repr(expiry_for(ttl)).encode("ascii") + b"\n" + value

        with self._lock:
            try:
                with open(path, "wb") as f:
                    f.write(data)
            except OSError as exc:
                raise StorageError(f"Could not write cache file {path}") from exc

    def remove(self, key: str) -> None:
        path = self._path_for(key)

        with self._lock:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass

    def close(self) -> None:  # pragma: no cover
        return


class SQLiteStorage(BaseStorage):
    """
    A simple sqlite3 storage.

    :param connection: A connection for sqlite, defaults to None
    :type connection: tp.Optional[sqlite3.Connection], optional
    """

    def __init__(
        self,
        connection: tp.Optional[sqlite3.Connection] = None,
        database_path: str = ".lastmodified.sqlite",
    ) -> None:
        if sqlite3 is None:  # pragma: no cover
            raise RuntimeError(
                f"The `{type(self).__name__}` was used, but the required packages were not found. "
                "Check that you have `lastmodified` installed with the `sqlite` extension as shown.\n"
                "```pip install lastmodified[sqlite]```"
            )

        self._connection: tp.Optional[sqlite3.Connection] = connection or None
        self._database_path = database_path
        self._setup_lock = threading.Lock()
        self._setup_completed: bool = False
        self._lock = threading.Lock()

    def _setup(self) -> None:
        with self._setup_lock:
            if not self._setup_completed:
                if not self._connection:  # pragma: no cover
                    self._connection = sqlite3.connect(self._database_path, check_same_thread=False)
                self._connection.execute(
                    "CREATE TABLE IF NOT EXISTS pages(key TEXT PRIMARY KEY, data BLOB, expires_at REAL)"
                )
                self._connection.commit()
                self._setup_completed = True

    def get(self, key: str) -> tp.Optional[bytes]:
        self._setup()
        assert self._connection

        with self._lock:
            cursor = self._connection.execute("SELECT data, expires_at FROM pages WHERE key = ?", [key])
            row = cursor.fetchone()
            if row is None:
                return None

            data, expires_at = row
            if is_expired(expires_at):
                self._connection.execute("DELETE FROM pages WHERE key = ?", [key])
                self._connection.commit()
                return None
            return bytes(data)

    def set(self, key: str, value: bytes, ttl: tp.Union[int, float] = 0) -> None:
        self._setup()
        assert self._connection

        with self._lock:
            self._connection.execute(
                "INSERT OR REPLACE INTO pages(key, data, expires_at) VALUES(?, ?, ?)",
                [key, value, expiry_for(ttl)],
            )
            self._connection.commit()

    def remove(self, key: str) -> None:
        self._setup()
        assert self._connection

        with self._lock:
            self._connection.execute("DELETE FROM pages WHERE key = ?", [key])
            self._connection.commit()

    def close(self) -> None:  # pragma: no cover
        if self._connection is not None:
            self._connection.close()


class RedisStorage(BaseStorage):
    """
    A simple redis storage.

    :param client: A client for redis, defaults to None
    :type client: tp.Optional["redis.Redis"], optional
    :param prefix: Prefix of every key written to redis, defaults to "lastmodified:"
    :type prefix: str
    """

    def __init__(
        self,
        client: tp.Optional[redis.Redis] = None,  # type: ignore
        prefix: str = "lastmodified:",
    ) -> None:
        if redis is None:  # pragma: no cover
            raise RuntimeError(
                f"The `{type(self).__name__}` was used, but the required packages were not found. "
                "Check that you have `lastmodified` installed with the `redis` extension as shown.\n"
                "```pip install lastmodified[redis]```"
            )

        if client is None:
            self._client = redis.Redis()  # type: ignore
        else:  # pragma: no cover
            self._client = client
        self._prefix = prefix

    def get(self, key: str) -> tp.Optional[bytes]:
        cached_page = self._client.get(self._prefix + key)
        if cached_page is None:
            return None
        return bytes(cached_page)

    def set(self, key: str, value: bytes, ttl: tp.Union[int, float] = 0) -> None:
        if ttl > 0:
            self._client.set(self._prefix + key, value, px=max(1, float_seconds_to_int_milliseconds(ttl)))
        else:
            self._client.set(self._prefix + key, value)

    def remove(self, key: str) -> None:
        self._client.delete(self._prefix + key)

    def close(self) -> None:  # pragma: no cover
        self._client.close()


class InMemoryStorage(BaseStorage):
    """
    A simple in-memory storage.

    When full, the least recently used page is evicted.

    :param capacity: The maximum number of pages that can be cached, defaults to 128
    :type capacity: int, optional
    """

    def __init__(self, capacity: int = 128) -> None:
        if capacity <= 0:
            raise ValueError("Capacity must be positive")

        self._capacity = capacity
        self._cache: OrderedDict[str, tp.Tuple[bytes, float]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> tp.Optional[bytes]:
        with self._lock:
            try:
                value, expires_at = self._cache[key]
            except KeyError:
                return None

            if is_expired(expires_at):
                del self._cache[key]
                return None

            self._cache.move_to_end(key)
            return value

    def set(self, key: str, value: bytes, ttl: tp.Union[int, float] = 0) -> None:
        with self._lock:
            self._cache[key] = (bytes(value), expiry_for(ttl))
            self._cache.move_to_end(key)

            while len(self._cache) > self._capacity:
                evicted_key, _ = self._cache.popitem(last=False)
                logger.debug("Evicted page from the in-memory storage: %s", evicted_key)

    def remove(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def close(self) -> None:  # pragma: no cover
        return

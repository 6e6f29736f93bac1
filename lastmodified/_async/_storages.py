from __future__ import annotations

import logging
import os
import re
import time
import typing as tp
from collections import OrderedDict
from pathlib import Path

import anyio

try:
    import anysqlite
except ImportError:  # pragma: no cover
    anysqlite = None  # type: ignore

from .._exceptions import StorageError
from .._utils import ensure_cache_dict, float_seconds_to_int_milliseconds

logger = logging.getLogger("lastmodified.storages")

__all__ = (
    "AsyncBaseStorage",
    "AsyncFileStorage",
    "AsyncRedisStorage",
    "AsyncSQLiteStorage",
    "AsyncInMemoryStorage",
)

try:
    import redis.asyncio as redis
except ImportError:  # pragma: no cover
    redis = None  # type: ignore

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_\-]+$")


def expiry_for(ttl: tp.Union[int, float]) -> float:
    """Absolute expiry of an entry. Zero means the entry never expires."""
    return time.time() + ttl if ttl > 0 else 0.0


def is_expired(expires_at: tp.Optional[float]) -> bool:
    return bool(expires_at) and tp.cast(float, expires_at) <= time.time()


class AsyncBaseStorage:
    """
    Key/value store for rendered page bodies.

    A `ttl` of 0 keeps the entry until it is removed or evicted.
    """

    async def get(self, key: str) -> tp.Optional[bytes]:
        raise NotImplementedError()

    async def set(self, key: str, value: bytes, ttl: tp.Union[int, float] = 0) -> None:
        raise NotImplementedError()

    async def remove(self, key: str) -> None:
        raise NotImplementedError()

    async def aclose(self) -> None:
        raise NotImplementedError()


class AsyncFileStorage(AsyncBaseStorage):
    """
    A simple file storage, one file per key.

    :param base_path: A storage base path where the pages should be saved, defaults to `.cache/lastmodified`
    :type base_path: tp.Optional[Path], optional
    """

    def __init__(self, base_path: tp.Optional[tp.Union[str, Path]] = None) -> None:
        self._base_path = ensure_cache_dict(Path(base_path) if base_path is not None else None)
        self._lock = anyio.Lock()

    def _path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise StorageError(f"Invalid cache key {key!r}")
        return self._base_path / key

    async def get(self, key: str) -> tp.Optional[bytes]:
        """
        Retrieves the page body stored under the key.

        :param key: The page cache key
        :type key: str
        :return: The stored bytes, or None when nothing or only an expired entry is stored.
        :rtype: tp.Optional[bytes]
        """

        path = self._path_for(key)

        async with self._lock:
            if not path.is_file():
                return None
            try:
                async with await anyio.open_file(path, "rb") as f:
                    raw = await f.read()
            except OSError as exc:
                raise StorageError(f"Could not read cache file {path}") from exc

        header, _, value = raw.partition(b"\n")
        try:
            expires_at = float(header)
        except ValueError:
            logger.warning("Ignoring corrupted cache file: %s", path)
            return None

        if is_expired(expires_at):
            await self.remove(key)
            return None
        return value

    async def set(self, key: str, value: bytes, ttl: tp.Union[int, float] = 0) -> None:
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

        async with self._lock:
            try:
                async with await anyio.open_file(path, "wb") as f:
                    await f.write(data)
            except OSError as exc:
                raise StorageError(f"Could not write cache file {path}") from exc

    async def remove(self, key: str) -> None:
        path = self._path_for(key)

        async with self._lock:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass

    async def aclose(self) -> None:  # pragma: no cover
        return


class AsyncSQLiteStorage(AsyncBaseStorage):
    """
    A simple sqlite3 storage.

    :param connection: A connection for sqlite, defaults to None
    :type connection: tp.Optional[anysqlite.Connection], optional
    """

    def __init__(
        self,
        connection: tp.Optional[anysqlite.Connection] = None,
        database_path: str = ".lastmodified.sqlite",
    ) -> None:
        if anysqlite is None:  # pragma: no cover
            raise RuntimeError(
                f"The `{type(self).__name__}` was used, but the required packages were not found. "
                "Check that you have `lastmodified` installed with the `sqlite` extension as shown.\n"
                "```pip install lastmodified[sqlite]```"
            )

        self._connection: tp.Optional[anysqlite.Connection] = connection or None
        self._database_path = database_path
        self._setup_lock = anyio.Lock()
        self._setup_completed: bool = False
        self._lock = anyio.Lock()

    async def _setup(self) -> None:
        async with self._setup_lock:
            if not self._setup_completed:
                if not self._connection:  # pragma: no cover
                    self._connection = await anysqlite.connect(self._database_path, check_same_thread=False)
                await self._connection.execute(
                    "CREATE TABLE IF NOT EXISTS pages(key TEXT PRIMARY KEY, data BLOB, expires_at REAL)"
                )
                await self._connection.commit()
                self._setup_completed = True

    async def get(self, key: str) -> tp.Optional[bytes]:
        await self._setup()
        assert self._connection

        async with self._lock:
            cursor = await self._connection.execute("SELECT data, expires_at FROM pages WHERE key = ?", [key])
            row = await cursor.fetchone()
            if row is None:
                return None

            data, expires_at = row
            if is_expired(expires_at):
                await self._connection.execute("DELETE FROM pages WHERE key = ?", [key])
                await self._connection.commit()
                return None
            return bytes(data)

    async def set(self, key: str, value: bytes, ttl: tp.Union[int, float] = 0) -> None:
        await self._setup()
        assert self._connection

        async with self._lock:
            await self._connection.execute(
                "INSERT OR REPLACE INTO pages(key, data, expires_at) VALUES(?, ?, ?)",
                [key, value, expiry_for(ttl)],
            )
            await self._connection.commit()

    async def remove(self, key: str) -> None:
        await self._setup()
        assert self._connection

        async with self._lock:
            await self._connection.execute("DELETE FROM pages WHERE key = ?", [key])
            await self._connection.commit()

    async def aclose(self) -> None:  # pragma: no cover
        if self._connection is not None:
            await self._connection.close()


class AsyncRedisStorage(AsyncBaseStorage):
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

    async def get(self, key: str) -> tp.Optional[bytes]:
        cached_page = await self._client.get(self._prefix + key)
        if cached_page is None:
            return None
        return bytes(cached_page)

    async def set(self, key: str, value: bytes, ttl: tp.Union[int, float] = 0) -> None:
        if ttl > 0:
            await self._client.set(self._prefix + key, value, px=max(1, float_seconds_to_int_milliseconds(ttl)))
        else:
            await self._client.set(self._prefix + key, value)

    async def remove(self, key: str) -> None:
        await self._client.delete(self._prefix + key)

    async def aclose(self) -> None:  # pragma: no cover
        await self._client.aclose()


class AsyncInMemoryStorage(AsyncBaseStorage):
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
        self._lock = anyio.Lock()

    async def get(self, key: str) -> tp.Optional[bytes]:
        async with self._lock:
            try:
                value, expires_at = self._cache[key]
            except KeyError:
                return None

            if is_expired(expires_at):
                del self._cache[key]
                return None

            self._cache.move_to_end(key)
            return value

    async def set(self, key: str, value: bytes, ttl: tp.Union[int, float] = 0) -> None:
        async with self._lock:
            self._cache[key] = (bytes(value), expiry_for(ttl))
            self._cache.move_to_end(key)

            while len(self._cache) > self._capacity:
                evicted_key, _ = self._cache.popitem(last=False)
                logger.debug("Evicted page from the in-memory storage: %s", evicted_key)

    async def remove(self, key: str) -> None:
        async with self._lock:
            self._cache.pop(key, None)

    async def aclose(self) -> None:  # pragma: no cover
        return

"""Document store: key-addressed JSON blobs for layouts and custom widgets.

Paths are slash-separated ("custom-widgets/customer/42/widget_x.json").
Listing is prefix-based, the way a bucket/folder scan works, so a real
database can replace the blob backend without touching callers.

Not-found is a normal state: get() returns None and delete() is idempotent.
Backend failures raise DocumentStoreError.
"""

import time
from typing import Protocol, runtime_checkable

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from dashgrid.core.metrics import (
    document_operation_duration_seconds,
    document_operations_total,
)

logger = structlog.stdlib.get_logger(__name__)

_GLOB_SPECIAL = "*?[]\\"


class DocumentStoreError(Exception):
    """Raised when the underlying storage rejects or fails an operation."""

    def __init__(self, operation: str, path: str, reason: str):
        self.operation = operation
        self.path = path
        self.reason = reason
        super().__init__(f"Document store {operation} failed for {path!r}: {reason}")


@runtime_checkable
class DocumentStore(Protocol):
    async def put(self, path: str, data: bytes) -> None: ...

    async def get(self, path: str) -> bytes | None: ...

    async def list(self, prefix: str) -> list[str]: ...

    async def delete(self, path: str) -> None: ...


def _escape_glob(value: str) -> str:
    """Escape Redis MATCH glob metacharacters so a prefix matches literally."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in value)


class RedisDocumentStore:
    """Documents stored as plain Redis string values under a key prefix."""

    def __init__(self, redis: Redis, key_prefix: str = "dashgrid:doc:", scan_count: int = 500):
        self._redis = redis
        self._key_prefix = key_prefix
        self._scan_count = scan_count

    def _key(self, path: str) -> str:
        return f"{self._key_prefix}{path}"

    def _record(self, operation: str, status: str, started: float) -> None:
        document_operation_duration_seconds.labels(
            backend="redis", operation=operation
        ).observe(time.monotonic() - started)
        document_operations_total.labels(
            backend="redis", operation=operation, status=status
        ).inc()

    async def put(self, path: str, data: bytes) -> None:
        start = time.monotonic()
        try:
            await self._redis.set(self._key(path), data)
        except (RedisError, OSError) as exc:
            self._record("put", "error", start)
            logger.warning("document_put_failed", path=path, error=str(exc))
            raise DocumentStoreError("put", path, str(exc)) from exc
        self._record("put", "ok", start)

    async def get(self, path: str) -> bytes | None:
        start = time.monotonic()
        try:
            raw = await self._redis.get(self._key(path))
        except (RedisError, OSError) as exc:
            self._record("get", "error", start)
            logger.warning("document_get_failed", path=path, error=str(exc))
            raise DocumentStoreError("get", path, str(exc)) from exc
        self._record("get", "hit" if raw is not None else "miss", start)
        if isinstance(raw, str):
            return raw.encode()
        return raw

    async def list(self, prefix: str) -> list[str]:
        """Return every document path starting with prefix, sorted."""
        start = time.monotonic()
        match = f"{_escape_glob(self._key(prefix))}*"
        paths: list[str] = []
        cursor = 0
        try:
            while True:
                cursor, keys = await self._redis.scan(
                    cursor=cursor, match=match, count=self._scan_count
                )
                for key in keys:
                    if isinstance(key, bytes):
                        key = key.decode()
                    paths.append(key[len(self._key_prefix) :])
                if cursor == 0:
                    break
        except (RedisError, OSError) as exc:
            self._record("list", "error", start)
            logger.warning("document_list_failed", prefix=prefix, error=str(exc))
            raise DocumentStoreError("list", prefix, str(exc)) from exc
        self._record("list", "ok", start)
        # SCAN may return a key more than once across iterations
        return sorted(set(paths))

    async def delete(self, path: str) -> None:
        start = time.monotonic()
        try:
            await self._redis.delete(self._key(path))
        except (RedisError, OSError) as exc:
            self._record("delete", "error", start)
            logger.warning("document_delete_failed", path=path, error=str(exc))
            raise DocumentStoreError("delete", path, str(exc)) from exc
        self._record("delete", "ok", start)


class InMemoryDocumentStore:
    """Process-local store for development and tests."""

    def __init__(self, documents: dict[str, bytes] | None = None):
        self._documents: dict[str, bytes] = dict(documents or {})

    async def put(self, path: str, data: bytes) -> None:
        self._documents[path] = bytes(data)
        document_operations_total.labels(backend="memory", operation="put", status="ok").inc()

    async def get(self, path: str) -> bytes | None:
        return self._documents.get(path)

    async def list(self, prefix: str) -> list[str]:
        return sorted(p for p in self._documents if p.startswith(prefix))

    async def delete(self, path: str) -> None:
        self._documents.pop(path, None)

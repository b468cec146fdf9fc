"""
Redis-backed document store.

KEY LAYOUT
==========

  {prefix}doc:{path}        JSON document
  {prefix}children:{path}   set of child segments that hold a document
  {prefix}changes:{path}    pub/sub channel, payload is the changed path

CONCURRENCY
===========

transactional_update is optimistic locking on the document key:

  1. WATCH the key and read the current document
  2. Compute the next document
  3. MULTI / SET / EXEC; EXEC fails with WatchError if another client
     wrote the key after step 1 -> sleep a jittered, exponentially growing
     backoff and retry from step 1

No lock is held while the caller computes, so uncontended updates cost one
round-trip. The jitter spreads contending writers out so they do not keep
colliding in lockstep.

atomic_multi_write queues every SET/DEL in one MULTI/EXEC block, so the
writes land all-or-nothing.

Change notifications are published after commit, to the changed path and
every ancestor path. They are best-effort: a failed publish is logged and
never turns a committed write into an error. Delivery is at-most-once per
subscriber.
"""

import asyncio
import json
import random
from contextlib import asynccontextmanager, suppress
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    NoPermissionError,
    TimeoutError as RedisTimeoutError,
    WatchError,
)

from liveroom.core.errors import StorePermissionError, TransientStoreError
from liveroom.core.logging import get_logger
from liveroom.core.metrics import record_store_error
from liveroom.services.interfaces.document_store import (
    ABORT,
    ChangeCallback,
    DocumentStore,
    Subscription,
    TransactionResult,
    UpdateFn,
    ancestor_paths,
    parent_path,
)

logger = get_logger(__name__)


def _decode(raw: Optional[str]) -> Optional[dict]:
    if raw is None:
        return None
    return json.loads(raw)


class _RedisSubscription(Subscription):
    def __init__(self, pubsub, task: asyncio.Task):
        self._pubsub = pubsub
        self._task = task

    async def close(self):
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        await self._pubsub.unsubscribe()
        await self._pubsub.aclose()


class RedisDocumentStore(DocumentStore):

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = "liveroom:",
        max_retries: int = 50,
        backoff_base_s: float = 0.002,
        backoff_max_s: float = 0.05,
    ):
        self.redis = client
        self.prefix = key_prefix
        self.max_retries = max_retries
        self.backoff_base_s = backoff_base_s
        self.backoff_max_s = backoff_max_s

    def _doc_key(self, path: str) -> str:
        return f"{self.prefix}doc:{path}"

    def _children_key(self, path: str) -> str:
        return f"{self.prefix}children:{path}"

    def _channel(self, path: str) -> str:
        return f"{self.prefix}changes:{path}"

    @asynccontextmanager
    async def _translate_errors(self, operation: str, path: str):
        try:
            yield
        except NoPermissionError as e:
            record_store_error("permission")
            logger.warning("store_permission_denied", operation=operation, path=path, error=str(e))
            raise StorePermissionError() from e
        except (RedisConnectionError, RedisTimeoutError) as e:
            record_store_error("transient")
            logger.error("store_unavailable", operation=operation, path=path, error=str(e))
            raise TransientStoreError() from e

    def _queue_write(self, pipe, path: str, value: Optional[dict]) -> None:
        segment = path.rsplit("/", 1)[-1]
        children_key = self._children_key(parent_path(path))
        if value is None:
            pipe.delete(self._doc_key(path))
            pipe.srem(children_key, segment)
        else:
            pipe.set(self._doc_key(path), json.dumps(value))
            pipe.sadd(children_key, segment)

    async def _publish(self, changed: list[str]) -> None:
        """Best-effort change notification; the write has already committed."""
        try:
            await self._send_notifications(changed)
        except (RedisConnectionError, RedisTimeoutError) as e:
            record_store_error("publish")
            logger.warning("store_publish_failed", paths=changed, error=str(e))

    async def _send_notifications(self, changed: list[str]) -> None:
        async with self.redis.pipeline(transaction=False) as pipe:
            for path in changed:
                for watched in ancestor_paths(path):
                    pipe.publish(self._channel(watched), path)
            await pipe.execute()

    def _backoff_s(self, attempt: int) -> float:
        ceiling = min(self.backoff_max_s, self.backoff_base_s * (2 ** (attempt - 1)))
        return random.uniform(0, ceiling)

    async def read(self, path: str) -> Optional[dict]:
        async with self._translate_errors("read", path):
            raw = await self.redis.get(self._doc_key(path))
        return _decode(raw)

    async def read_children(self, path: str) -> dict[str, dict]:
        async with self._translate_errors("read_children", path):
            names = sorted(await self.redis.smembers(self._children_key(path)))
            if not names:
                return {}
            raws = await self.redis.mget([self._doc_key(f"{path}/{name}") for name in names])
        return {name: _decode(raw) for name, raw in zip(names, raws) if raw is not None}

    async def _try_commit(self, path: str, fn: UpdateFn) -> Optional[TransactionResult]:
        """One WATCH/MULTI/EXEC attempt. Returns None when another writer got in first."""
        key = self._doc_key(path)
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                current = _decode(await pipe.get(key))

                next_value = fn(current)
                if next_value is ABORT or next_value is None:
                    return TransactionResult(committed=False, value=current)

                pipe.multi()
                self._queue_write(pipe, path, next_value)
                await pipe.execute()
            except WatchError:
                return None
        return TransactionResult(committed=True, value=next_value)

    async def transactional_update(self, path: str, fn: UpdateFn) -> TransactionResult:
        for attempt in range(1, self.max_retries + 1):
            async with self._translate_errors("transactional_update", path):
                result = await self._try_commit(path, fn)

            if result is None:
                logger.debug("transaction_conflict", path=path, attempt=attempt)
                await asyncio.sleep(self._backoff_s(attempt))
                continue

            if result.committed:
                await self._publish([path])
            return result

        record_store_error("transient")
        logger.warning("transaction_retries_exhausted", path=path, attempts=self.max_retries)
        raise TransientStoreError("Too many concurrent updates. Please retry.")

    async def atomic_multi_write(self, updates: dict[str, Optional[dict]]) -> None:
        async with self._translate_errors("atomic_multi_write", ",".join(updates)):
            async with self.redis.pipeline(transaction=True) as pipe:
                for path, value in updates.items():
                    self._queue_write(pipe, path, value)
                await pipe.execute()
        await self._publish(list(updates))

    async def subscribe(self, path: str, on_change: ChangeCallback) -> Subscription:
        async with self._translate_errors("subscribe", path):
            pubsub = self.redis.pubsub()
            await pubsub.subscribe(self._channel(path))
        task = asyncio.create_task(self._listen(pubsub, path, on_change))
        return _RedisSubscription(pubsub, task)

    async def _listen(self, pubsub, path: str, on_change: ChangeCallback) -> None:
        while True:
            try:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except (RedisConnectionError, RedisTimeoutError) as e:
                record_store_error("transient")
                logger.error("subscription_read_failed", path=path, error=str(e))
                await asyncio.sleep(1.0)
                continue
            if message is None or message.get("type") != "message":
                continue
            try:
                await on_change(message["data"])
            except Exception:
                logger.exception("subscriber_callback_failed", path=path)

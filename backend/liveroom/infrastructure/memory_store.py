"""
In-process document store.

Used for tests and single-process local runs. A transaction holds the store
lock across read, compute and commit, so concurrent writers queue instead of
conflicting and never retry. Readers do not take the lock.
"""

import asyncio
import copy
from typing import Optional

from liveroom.core.logging import get_logger
from liveroom.services.interfaces.document_store import (
    ABORT,
    ChangeCallback,
    DocumentStore,
    Subscription,
    TransactionResult,
    UpdateFn,
    ancestor_paths,
)

logger = get_logger(__name__)


class _MemorySubscription(Subscription):
    def __init__(self, store: "MemoryDocumentStore", path: str, callback: ChangeCallback):
        self._store = store
        self._path = path
        self._callback = callback

    async def close(self):
        listeners = self._store._listeners.get(self._path, [])
        if self._callback in listeners:
            listeners.remove(self._callback)


class MemoryDocumentStore(DocumentStore):

    def __init__(self):
        self._docs: dict[str, dict] = {}
        self._listeners: dict[str, list[ChangeCallback]] = {}
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    async def read(self, path: str) -> Optional[dict]:
        return copy.deepcopy(self._docs.get(path))

    async def read_children(self, path: str) -> dict[str, dict]:
        prefix = f"{path}/"
        children = {}
        for key, doc in self._docs.items():
            if key.startswith(prefix) and "/" not in key[len(prefix):]:
                children[key[len(prefix):]] = copy.deepcopy(doc)
        return children

    async def transactional_update(self, path: str, fn: UpdateFn) -> TransactionResult:
        async with self._lock:
            # Yield once, as a round-trip to a real store would
            await asyncio.sleep(0)

            current = copy.deepcopy(self._docs.get(path))
            next_value = fn(current)
            if next_value is ABORT or next_value is None:
                return TransactionResult(committed=False, value=current)
            self._put(path, next_value)

        self._notify([path])
        return TransactionResult(committed=True, value=copy.deepcopy(next_value))

    async def atomic_multi_write(self, updates: dict[str, Optional[dict]]) -> None:
        async with self._lock:
            for path, value in updates.items():
                self._put(path, value)
        self._notify(list(updates))

    async def subscribe(self, path: str, on_change: ChangeCallback) -> Subscription:
        self._listeners.setdefault(path, []).append(on_change)
        return _MemorySubscription(self, path, on_change)

    async def close(self):
        logger.debug("memory_store_closed", pending_notifications=len(self._pending))
        for task in list(self._pending):
            task.cancel()
        self._listeners.clear()

    def _put(self, path: str, value: Optional[dict]) -> None:
        if value is None:
            self._docs.pop(path, None)
        else:
            self._docs[path] = copy.deepcopy(value)

    def _notify(self, changed: list[str]) -> None:
        for path in changed:
            for watched in ancestor_paths(path):
                for callback in list(self._listeners.get(watched, [])):
                    task = asyncio.create_task(callback(path))
                    self._pending.add(task)
                    task.add_done_callback(self._pending.discard)

"""
Backing store interface.
Abstracts the replicated key-value document store the engine runs on top of.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional


class _Abort:
    def __repr__(self) -> str:
        return "ABORT"


# Returned from a transactional update function to abort without writing
ABORT = _Abort()

UpdateFn = Callable[[Optional[dict]], Any]
ChangeCallback = Callable[[str], Awaitable[None]]


@dataclass
class TransactionResult:
    committed: bool
    value: Optional[dict]


def parent_path(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


def ancestor_paths(path: str) -> list[str]:
    """rooms/r1/rsvp_config -> [rooms/r1/rsvp_config, rooms/r1, rooms]"""
    parts = path.split("/")
    return ["/".join(parts[:i]) for i in range(len(parts), 0, -1)]


class Subscription(ABC):
    """Handle returned by DocumentStore.subscribe; the caller owns it."""

    @abstractmethod
    async def close(self):
        """Stop delivering change notifications."""
        pass


class DocumentStore(ABC):
    """
    Interface for the document store.

    Paths are slash-separated ("rooms/r1/rsvp_config"). A change at a path
    notifies subscribers of that path and of every ancestor path.

    Implementations:
    - RedisDocumentStore: WATCH/MULTI transactions, pub/sub notifications
    - MemoryDocumentStore: in-process versioned compare-and-swap
    """

    @abstractmethod
    async def read(self, path: str) -> Optional[dict]:
        """Return the document at path, or None if absent."""
        pass

    @abstractmethod
    async def read_children(self, path: str) -> dict[str, dict]:
        """Return direct child documents keyed by their last path segment."""
        pass

    @abstractmethod
    async def transactional_update(self, path: str, fn: UpdateFn) -> TransactionResult:
        """
        Optimistic read-modify-write.

        fn receives the current document (or None) and returns the next
        document, or ABORT to leave it untouched. fn may run several times
        when another writer commits in between; it must not have side
        effects beyond local bookkeeping.

        Returns:
            TransactionResult(committed=False, value=current) on abort
            TransactionResult(committed=True, value=next) on commit
        """
        pass

    @abstractmethod
    async def atomic_multi_write(self, updates: dict[str, Optional[dict]]) -> None:
        """
        Write several paths all-or-nothing. A None value deletes the path.

        Raises:
            TransientStoreError if nothing was written
        """
        pass

    @abstractmethod
    async def subscribe(self, path: str, on_change: ChangeCallback) -> Subscription:
        """Call on_change(changed_path) whenever path or a descendant changes."""
        pass

    async def close(self):
        """Release connections."""
        pass

"""Abstract base class for thread stores.

A thread store owns one `Thread` aggregate. The abstraction hides:
- Persistence mechanism (in-memory, SQLite)
- Serialization format of the thread
- Connection management

Every mutation goes through `modify`, which runs the caller's callback on
a private copy under a lock, persists the result and then notifies
subscribers. Concurrent callers therefore observe strictly serialized
read-modify-write semantics.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeVar

from ..thread import NoneStatus, Thread, is_live

T = TypeVar("T")


class ThreadSubscription:
    """Stream of thread snapshots published after each modification.

    Usage:
        with store.subscribe() as changes:
            while isinstance((await store.read()).status, PausedStatus):
                await changes.next()
    """

    def __init__(self, store: "ThreadStore"):
        self._store = store
        self._queue: asyncio.Queue[Thread] = asyncio.Queue()

    def _publish(self, thread: Thread) -> None:
        self._queue.put_nowait(thread)

    async def next(self) -> Thread:
        """Wait for the next published snapshot."""
        return await self._queue.get()

    def close(self) -> None:
        self._store._unsubscribe(self)

    def __enter__(self) -> "ThreadSubscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __aiter__(self) -> "ThreadSubscription":
        return self

    async def __anext__(self) -> Thread:
        return await self.next()


class ThreadStore(ABC):
    """Abstract thread store backend.

    Subclasses implement loading and persisting; locking, copying and
    change notification live here.
    """

    def __init__(self, thread_id: str = "default"):
        self._thread_id = thread_id
        self._thread: Thread | None = None
        self._lock = asyncio.Lock()
        self._subscribers: list[ThreadSubscription] = []

    @property
    def thread_id(self) -> str:
        return self._thread_id

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the store backend."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the store backend gracefully."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    @abstractmethod
    async def _load(self) -> Thread | None:
        """Load the persisted thread, or None if none exists yet."""

    @abstractmethod
    async def _persist(self, thread: Thread) -> None:
        """Persist the thread after a modification."""

    async def _current(self) -> Thread:
        if self._thread is None:
            self._thread = await self._load() or Thread(id=self._thread_id)
        return self._thread

    async def read(self) -> Thread:
        """Return a snapshot of the thread; changes to it are not stored."""
        async with self._lock:
            return (await self._current()).model_copy(deep=True)

    async def modify(self, callback: Callable[[Thread], T]) -> T:
        """Atomically apply `callback` to the thread and persist the result.

        The callback receives a private copy; if it raises, the stored
        thread is unchanged and the exception propagates.

        Returns:
            Whatever the callback returns
        """
        async with self._lock:
            thread = (await self._current()).model_copy(deep=True)
            result = callback(thread)
            await self._persist(thread)
            self._thread = thread
            snapshot = thread.model_copy(deep=True)

        for subscriber in list(self._subscribers):
            subscriber._publish(snapshot)
        return result

    async def clear(self) -> None:
        """Remove all steps and reset the status."""
        def reset(thread: Thread) -> None:
            fresh = Thread(id=thread.id)
            thread.steps = fresh.steps
            thread.status = fresh.status

        await self.modify(reset)

    async def force_stop(self) -> str | None:
        """Release a thread whose run died without cleaning up.

        A running or paused status is reset to none; steps are kept, and
        the next run repairs any step left incomplete.

        Returns:
            The run id that held the thread, or None if no run did
        """
        if not is_live((await self.read()).status):
            return None

        def release(thread: Thread) -> str | None:
            if not is_live(thread.status):
                return None
            run_id = thread.status.run_id
            thread.status = NoneStatus()
            return run_id

        return await self.modify(release)

    def subscribe(self) -> ThreadSubscription:
        subscription = ThreadSubscription(self)
        self._subscribers.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: ThreadSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    async def __aenter__(self) -> "ThreadStore":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

"""In-memory thread store.

The thread lives only as long as the process; suitable for single
sessions and tests.
"""

from ..thread import Thread
from .base import ThreadStore


class InMemoryThreadStore(ThreadStore):
    """In-memory thread store (session-only)."""

    def __init__(self, thread_id: str = "default", thread: Thread | None = None):
        super().__init__(thread_id)
        self._initial = thread

    async def connect(self) -> None:
        """Initialize store (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close store (no-op for in-memory)."""
        pass

    async def _load(self) -> Thread | None:
        if self._initial is None:
            return None
        return self._initial.model_copy(deep=True)

    async def _persist(self, thread: Thread) -> None:
        # The base class keeps the current thread; nothing else to write.
        pass

    @property
    def backend_type(self) -> str:
        return "memory"

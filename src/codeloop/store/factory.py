"""Factory for creating thread stores."""

from typing import Any

from .base import ThreadStore


def create_thread_store(
    backend: str = "memory",
    **kwargs: Any
) -> ThreadStore:
    """Create a thread store.

    Args:
        backend: Backend type ("memory" or "sqlite")
        **kwargs: Backend-specific configuration
            For memory:
                - thread_id: str (default: 'default')
                - thread: Thread | None (initial contents)
            For sqlite:
                - path: str | Path (default: './codeloop_threads.db')
                - thread_id: str (default: 'default')

    Returns:
        ThreadStore instance (call `connect()` or use `async with`)

    Raises:
        ValueError: If backend type is not supported
    """
    if backend == "memory":
        from .in_memory import InMemoryThreadStore
        return InMemoryThreadStore(**kwargs)

    elif backend == "sqlite":
        from .sqlite import SQLiteThreadStore
        return SQLiteThreadStore(**kwargs)

    raise ValueError(
        f"Unsupported thread store backend: {backend}. "
        f"Supported backends: memory, sqlite"
    )

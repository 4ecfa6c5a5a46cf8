"""Conversation state store for codeloop.

Holds a thread aggregate behind atomic read/modify operations and a
change subscription.
"""

from .base import ThreadStore, ThreadSubscription
from .factory import create_thread_store
from .in_memory import InMemoryThreadStore

__all__ = [
    "InMemoryThreadStore",
    "ThreadStore",
    "ThreadSubscription",
    "create_thread_store",
]

"""Session store backends."""

from liaison.conversation.store import SessionStore, SessionTransaction
from liaison.conversation.stores.inmemory import InMemorySessionStore
from liaison.conversation.stores.redis import RedisSessionStore

__all__ = [
    "SessionStore",
    "SessionTransaction",
    "InMemorySessionStore",
    "RedisSessionStore",
]

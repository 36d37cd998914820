"""Store error types shared by every session store backend."""

from liaison.db.errors import (
    ConnectionError,
    LockTimeoutError,
    NotFoundError,
    StoreError,
    ValidationError,
)

__all__ = [
    "ConnectionError",
    "LockTimeoutError",
    "NotFoundError",
    "StoreError",
    "ValidationError",
]

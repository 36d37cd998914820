"""Storage backend configuration models."""

from typing import Literal

from pydantic import BaseModel, Field

BackendType = Literal["inmemory", "redis"]


class StorageConfig(BaseModel):
    """Configuration for the session store backend."""

    backend: BackendType = Field(
        default="inmemory",
        description="Backend type",
    )
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL",
    )
    key_prefix: str = Field(
        default="liaison",
        description="Prefix for Redis keys",
    )
    lock_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long to wait for a session row lock",
    )
    lock_lease_seconds: int = Field(
        default=30,
        gt=0,
        description="How long a distributed lock is held before auto-release",
    )
    lock_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts before lock contention surfaces as an internal error",
    )

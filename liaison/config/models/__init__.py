"""Configuration section models."""

from liaison.config.models.api import APIConfig
from liaison.config.models.escalation import EscalationConfig
from liaison.config.models.lifecycle import LifecycleConfig
from liaison.config.models.observability import (
    LoggingConfig,
    MetricsConfig,
    ObservabilityConfig,
    TracingConfig,
)
from liaison.config.models.rate_limit import RateLimitConfig
from liaison.config.models.storage import StorageConfig

__all__ = [
    "APIConfig",
    "EscalationConfig",
    "LifecycleConfig",
    "LoggingConfig",
    "MetricsConfig",
    "ObservabilityConfig",
    "RateLimitConfig",
    "StorageConfig",
    "TracingConfig",
]

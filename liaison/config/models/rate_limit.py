"""Inbound message rate limiting configuration."""

from pydantic import BaseModel, Field, model_validator


class RateLimitConfig(BaseModel):
    """Per-session sliding window limits for visitor messages."""

    enabled: bool = Field(default=True, description="Enable rate limiting")
    window_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Sliding window size",
    )
    max_messages: int = Field(
        default=10,
        gt=0,
        description="Messages allowed per window before rejecting",
    )
    spam_threshold: int = Field(
        default=20,
        gt=0,
        description="Attempts per window that flag the visitor as a spammer",
    )

    @model_validator(mode="after")
    def validate_thresholds(self) -> "RateLimitConfig":
        """Spam detection only makes sense above the rejection limit."""
        if self.spam_threshold < self.max_messages:
            raise ValueError("spam_threshold must be >= max_messages")
        return self

"""Session lifecycle configuration."""

from pydantic import BaseModel, Field


class LifecycleConfig(BaseModel):
    """Limits that govern reading, reopening and answering sessions."""

    reopen_window_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Grace window after closure during which reopening is allowed",
    )
    max_session_age_seconds: float = Field(
        default=604800.0,  # 7 days
        gt=0,
        description="Sessions older than this are reported as expired",
    )
    responder_history_limit: int = Field(
        default=50,
        gt=0,
        description="Most recent messages handed to the responder",
    )
    capture_user_name: bool = Field(
        default=True,
        description="Try to learn the visitor's name from their replies",
    )
    escalation_confidence_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Responder replies below this confidence suggest an operator",
    )

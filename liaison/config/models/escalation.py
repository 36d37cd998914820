"""Escalation timer configuration."""

from pydantic import BaseModel, Field


class EscalationConfig(BaseModel):
    """Delays for the timer-driven escalations, in seconds."""

    waiting_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="WAITING reverts to ACTIVE when no operator accepts in time",
    )
    operator_response_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Close the session when the assigned operator never writes",
    )
    user_inactivity_warning_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Visitor silence before the presence check is sent",
    )
    user_inactivity_final_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Time after the presence check before auto-close",
    )
    ai_inactivity_timeout_seconds: float = Field(
        default=900.0,
        gt=0,
        description="Close responder-only sessions after this much silence",
    )
    operator_disconnect_grace_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Grace period for an operator to reconnect",
    )
    user_disconnect_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Auto-close when a visitor does not reconnect in time",
    )

"""Actions a WebSocket client can send.

Each frame is a JSON object tagged by ``action``. Operators identify with
``operator_join`` before any operator-only action; visitors bind to their
session with ``visitor_join``.
"""

from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter


class OperatorJoin(BaseModel):
    action: Literal["operator_join"]
    operator_id: str = Field(..., min_length=1)


class JoinDashboard(BaseModel):
    action: Literal["join_dashboard"]


class LeaveDashboard(BaseModel):
    action: Literal["leave_dashboard"]


class JoinChat(BaseModel):
    """Operator starts viewing a session."""

    action: Literal["join_chat"]
    session_id: UUID


class LeaveChat(BaseModel):
    action: Literal["leave_chat"]
    session_id: UUID


class VisitorJoin(BaseModel):
    action: Literal["visitor_join"]
    session_id: UUID


class VisitorLeave(BaseModel):
    action: Literal["visitor_leave"]


class ConfirmPresence(BaseModel):
    action: Literal["confirm_presence"]


class TypingIndicator(BaseModel):
    action: Literal["typing"]
    is_typing: bool
    session_id: UUID | None = Field(
        default=None, description="Required for operators, implied for visitors"
    )


ClientAction = Annotated[
    Union[
        OperatorJoin,
        JoinDashboard,
        LeaveDashboard,
        JoinChat,
        LeaveChat,
        VisitorJoin,
        VisitorLeave,
        ConfirmPresence,
        TypingIndicator,
    ],
    Field(discriminator="action"),
]

client_action_adapter: TypeAdapter[ClientAction] = TypeAdapter(ClientAction)

"""Automated responder used while no operator owns a session."""

from liaison.providers.responder.base import Responder, ResponderError, ResponderReply
from liaison.providers.responder.mock import MockResponder

__all__ = [
    "MockResponder",
    "Responder",
    "ResponderError",
    "ResponderReply",
]

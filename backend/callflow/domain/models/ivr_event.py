"""
IVR Event Models
Inbound event kinds and the routing decision returned for them
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Dict, Any
from enum import Enum

from callflow.domain.models.ivr_flow import RoutingAction


class IvrEventType(str, Enum):
    """
    Event kinds reported by the telephony provider.

    Unrecognized event names parse to UNKNOWN, which has its own handler,
    so every kind the dispatcher can see is an explicit member here.
    """
    DTMF_MENU = "dtmf_menu"
    EXTENSION_DIAL = "extension_dial"
    DEPT_DIAL = "dept_dial"
    AI_HANDOFF = "ai_handoff"
    ANSWERED = "answered"
    NO_ANSWER = "no_answer"
    BUSY = "busy"
    FAILED = "failed"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, event: str) -> "IvrEventType":
        try:
            return cls(event)
        except ValueError:
            return cls.UNKNOWN


class DuplicateEventPolicy(str, Enum):
    """What to do with a redelivered event"""
    RECORD = "record"                      # Append every delivery (raw audit)
    SKIP_CONSECUTIVE = "skip_consecutive"  # Drop an exact repeat of the previous event step


class RoutingDecision(BaseModel):
    """Advisory next action for the call-control collaborator"""
    model_config = ConfigDict(use_enum_values=True)

    action: RoutingAction
    params: Dict[str, Any] = Field(default_factory=dict)

    def to_response(self) -> dict:
        return {"action": self.action, "params": self.params}

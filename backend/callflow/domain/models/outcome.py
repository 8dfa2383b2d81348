"""
Call Outcome Models
Outcome tags and the summary returned when a call is finalized
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Tuple
from enum import Enum

from callflow.domain.models.ivr_flow import RoutingAction
from callflow.domain.models.call_session import CallSession


class CallOutcome(str, Enum):
    """
    Final classification of a call.
    Each finalized call carries exactly one outcome.
    """
    ANSWERED = "answered"
    VOICEMAIL = "voicemail"
    EXTENSION_ANSWERED = "extension_answered"
    DEPT_ANSWERED = "dept_answered"
    AI_HANDLED = "ai_handled"
    CALLER_HUNG_UP = "caller_hung_up"
    UNKNOWN = "unknown"


# Last routing action -> (outcome, tag)
OUTCOME_RULES: Dict[str, Tuple[CallOutcome, Optional[str]]] = {
    RoutingAction.ANSWERED.value: (CallOutcome.ANSWERED, None),
    RoutingAction.VOICEMAIL.value: (CallOutcome.VOICEMAIL, "voicemail"),
    RoutingAction.EXTENSION.value: (CallOutcome.EXTENSION_ANSWERED, "extension"),
    RoutingAction.DEPT.value: (CallOutcome.DEPT_ANSWERED, "department"),
    RoutingAction.AI.value: (CallOutcome.AI_HANDLED, "ai"),
    RoutingAction.HANGUP.value: (CallOutcome.CALLER_HUNG_UP, None),
}


class OutcomeSummary(BaseModel):
    """Result of finalizing a call"""
    call_id: str
    outcome: CallOutcome
    tags: List[str] = Field(default_factory=list)
    duration_seconds: int = Field(..., ge=0)
    total_steps: int = Field(..., ge=0)
    ai_steps: int = Field(..., ge=0)
    api_calls: int = Field(..., ge=0)

    @classmethod
    def from_session(cls, session: CallSession) -> "OutcomeSummary":
        """Rebuild the summary from a finalized session."""
        return cls(
            call_id=session.call_id,
            outcome=CallOutcome(session.outcome),
            tags=session.tags,
            duration_seconds=session.duration_seconds or 0,
            total_steps=session.total_steps or 0,
            ai_steps=session.ai_steps or 0,
            api_calls=session.api_calls or 0,
        )

    def to_response(self) -> dict:
        return {
            "callId": self.call_id,
            "outcome": self.outcome.value,
            "duration": self.duration_seconds,
            "tags": list(self.tags),
            "totalSteps": self.total_steps,
            "aiSteps": self.ai_steps,
            "apiCalls": self.api_calls,
        }

"""
Call Session Models
Defines CallSession, PathStep and the call lifecycle enums.

The session is the durable, append-only audit trail of one call. Every
backend persists the same row shape (see to_row/from_row), so the
mutation helpers below carry the semantics and the backends only
provide atomicity.
"""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import json

from callflow.domain.exceptions import SessionAlreadyFinalizedError


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes coming back from storage as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CallStatus(str, Enum):
    """Call session status"""
    INITIATING = "initiating"  # Outbound, not yet connected
    ACTIVE = "active"          # Inbound entry received / outbound connected
    COMPLETED = "completed"    # Finalized by the log webhook
    FAILED = "failed"


class CallDirection(str, Enum):
    """Call direction"""
    INBOUND = "inbound"
    OUTBOUND = "outbound"


# Node ids written by the engine itself
ENTRY_NODE = "entry"
OUTBOUND_NODE = "outbound_init"
FLOW_NODE = "ivr_entry"
EVENT_NODE = "ivr_event"


class PathStep(BaseModel):
    """Single immutable entry in a call's path"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    node_id: str = Field(..., alias="nodeId", description="Node that produced the step")
    action: str = Field(..., description="Action or event name")
    at: datetime = Field(default_factory=utcnow, description="When the step was recorded")
    data: Dict[str, Any] = Field(default_factory=dict, description="Action-specific payload")

    @field_validator("at")
    @classmethod
    def normalize_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def to_dict(self) -> dict:
        """Persisted shape: {nodeId, action, at, data}"""
        return {
            "nodeId": self.node_id,
            "action": self.action,
            "at": self.at.isoformat(),
            "data": dict(self.data),
        }

    def is_same_event(self, other: "PathStep") -> bool:
        """True if both are event steps with the same event name and payload."""
        return (
            self.node_id == EVENT_NODE
            and other.node_id == EVENT_NODE
            and self.action == other.action
            and self.data == other.data
        )


class CallMetrics(BaseModel):
    """Metrics derived from the path at finalize"""
    total_steps: int = Field(..., ge=0)
    ai_steps: int = Field(..., ge=0)
    api_calls: int = Field(..., ge=0)
    duration_seconds: int = Field(..., ge=0)


class CallSession(BaseModel):
    """
    One call attempt, keyed by (tenant_id, call_id).

    Invariants:
    - path only grows; steps are never reordered or removed
    - outcome, metrics and ended_at are written once, by finalize
    """

    # ========== Identity ==========
    tenant_id: str = Field(..., description="Owning tenant")
    call_id: str = Field(..., description="Correlation key, unique within tenant")
    external_call_ref: Optional[str] = Field(None, description="Telephony provider call id")

    # ========== Call Details ==========
    from_number: str = Field(..., description="Caller number")
    to_number: str = Field(..., description="Called number")
    did: Optional[str] = Field(None, description="Inbound-dialed number")
    direction: CallDirection = Field(default=CallDirection.INBOUND)

    # ========== Lifecycle ==========
    status: CallStatus = Field(default=CallStatus.ACTIVE)
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    path: List[PathStep] = Field(default_factory=list)

    # ========== Routing ==========
    last_action: Optional[str] = Field(None, description="Most recent routing decision")
    last_action_step: Optional[int] = Field(None, description="Path index the decision belongs to")

    # ========== Outcome (set at finalize) ==========
    outcome: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    cdr: Dict[str, Any] = Field(default_factory=dict)
    total_steps: Optional[int] = None
    ai_steps: Optional[int] = None
    api_calls: Optional[int] = None
    duration_seconds: Optional[int] = None

    # Optimistic concurrency token
    version: int = Field(default=0, ge=0)

    @field_validator("started_at", "ended_at")
    @classmethod
    def normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @classmethod
    def start(
        cls,
        tenant_id: str,
        call_id: str,
        from_number: str,
        to_number: str,
        did: Optional[str] = None,
        started_at: Optional[datetime] = None,
        direction: CallDirection = CallDirection.INBOUND,
        external_call_ref: Optional[str] = None
    ) -> "CallSession":
        """
        Build a new session with its first path step.

        Inbound calls start ACTIVE with a call_received step; outbound
        calls start INITIATING with a call_initiated step.
        """
        if direction == CallDirection.OUTBOUND:
            status = CallStatus.INITIATING
            first_step = PathStep(
                node_id=OUTBOUND_NODE,
                action="call_initiated",
                data={"from": from_number, "to": to_number}
            )
        else:
            status = CallStatus.ACTIVE
            first_step = PathStep(
                node_id=ENTRY_NODE,
                action="call_received",
                data={"did": did, "from": from_number, "to": to_number}
            )

        return cls(
            tenant_id=tenant_id,
            call_id=call_id,
            external_call_ref=external_call_ref,
            from_number=from_number,
            to_number=to_number,
            did=did,
            direction=direction,
            status=status,
            started_at=started_at or utcnow(),
            path=[first_step],
        )

    # ========== Mutations (run under the backend's per-call serialization) ==========

    def append_step(self, step: PathStep, skip_duplicate: bool = False) -> Optional[int]:
        """
        Append a step to the path.

        Args:
            step: Step to append
            skip_duplicate: Do not append if step repeats the last event step

        Returns:
            Index of the appended step, or None if it was skipped as a duplicate
        """
        if skip_duplicate and self.path and self.path[-1].is_same_event(step):
            return None
        self.path.append(step)
        return len(self.path) - 1

    def apply_decision(self, step_index: int, action: str) -> bool:
        """Record the routing action for step_index unless a newer one is recorded."""
        if self.last_action_step is not None and step_index < self.last_action_step:
            return False
        self.last_action = action
        self.last_action_step = step_index
        return True

    def apply_finalize(
        self,
        outcome: str,
        tags: List[str],
        cdr: Dict[str, Any],
        metrics: CallMetrics,
        ended_at: datetime
    ) -> None:
        """Write outcome and metrics. Raises if the session already has an outcome."""
        if self.is_finalized:
            raise SessionAlreadyFinalizedError(self.tenant_id, self.call_id)
        self.status = CallStatus.COMPLETED
        self.ended_at = ended_at
        self.outcome = outcome
        self.tags = list(tags)
        self.cdr = dict(cdr)
        self.total_steps = metrics.total_steps
        self.ai_steps = metrics.ai_steps
        self.api_calls = metrics.api_calls
        self.duration_seconds = metrics.duration_seconds

    @property
    def is_finalized(self) -> bool:
        return self.outcome is not None

    @property
    def last_step(self) -> Optional[PathStep]:
        return self.path[-1] if self.path else None

    def elapsed_seconds(self, now: Optional[datetime] = None) -> float:
        """Seconds since started_at."""
        return ((now or utcnow()) - self.started_at).total_seconds()

    # ========== Storage boundary ==========

    def to_row(self) -> dict:
        """Serialize to the call_sessions row shape."""
        return {
            "tenant_id": self.tenant_id,
            "call_id": self.call_id,
            "signalwire_sid": self.external_call_ref,
            "from_number": self.from_number,
            "to_number": self.to_number,
            "did": self.did,
            "direction": self.direction.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "path": [step.to_dict() for step in self.path],
            "last_action": self.last_action,
            "last_action_step": self.last_action_step,
            "outcome": self.outcome,
            "tags": list(self.tags),
            "cdr": dict(self.cdr),
            "total_steps": self.total_steps,
            "ai_steps": self.ai_steps,
            "api_calls": self.api_calls,
            "duration_seconds": self.duration_seconds,
            "version": self.version,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CallSession":
        """
        Deserialize a call_sessions row.

        JSON columns may arrive as strings depending on the client, so
        path, tags and cdr are decoded when needed.
        """
        data = dict(row)

        for column in ("path", "tags", "cdr"):
            if isinstance(data.get(column), str):
                data[column] = json.loads(data[column])

        data["external_call_ref"] = data.pop("signalwire_sid", None) or data.get("external_call_ref")
        data["path"] = [
            step if isinstance(step, PathStep) else PathStep.model_validate(step)
            for step in data.get("path") or []
        ]
        data["tags"] = data.get("tags") or []
        data["cdr"] = data.get("cdr") or {}
        data["version"] = data.get("version") or 0
        data["direction"] = data.get("direction") or CallDirection.INBOUND

        known = set(cls.model_fields)
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_response(self) -> dict:
        """Wire representation for the calls endpoint."""
        return {
            "tenantId": self.tenant_id,
            "callId": self.call_id,
            "externalCallRef": self.external_call_ref,
            "fromNumber": self.from_number,
            "toNumber": self.to_number,
            "did": self.did,
            "direction": self.direction.value,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "endedAt": self.ended_at.isoformat() if self.ended_at else None,
            "path": [step.to_dict() for step in self.path],
            "outcome": self.outcome,
            "tags": list(self.tags),
            "cdr": dict(self.cdr),
            "totalSteps": self.total_steps,
            "aiSteps": self.ai_steps,
            "apiCalls": self.api_calls,
            "durationSeconds": self.duration_seconds,
        }

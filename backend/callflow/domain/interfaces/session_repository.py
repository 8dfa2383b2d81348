"""
Session Repository Interface
Abstract base class for durable call session storage
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from callflow.domain.models.call_session import (
    CallDirection,
    CallMetrics,
    CallSession,
    PathStep,
)

T = TypeVar("T")

# Mutator applied to a fresh copy of the stored session. Backends that
# retry on conflict may call it more than once, so it must only touch
# the session it is given.
SessionMutator = Callable[[CallSession], T]


class SessionRepository(ABC):
    """
    Keyed store of CallSession records.

    Implementations provide create/get/list and one atomic primitive,
    update(), that serializes read-modify-write per (tenant_id, call_id).
    append_step, record_decision and finalize are built on it so every
    backend shares the same mutation semantics.
    """

    @abstractmethod
    async def create(
        self,
        tenant_id: str,
        call_id: str,
        from_number: str,
        to_number: str,
        did: Optional[str],
        started_at: datetime,
        direction: CallDirection = CallDirection.INBOUND,
        external_call_ref: Optional[str] = None
    ) -> CallSession:
        """
        Create a session with its initial path step.

        Raises:
            SessionConflictError: If (tenant_id, call_id) already exists
        """
        pass

    @abstractmethod
    async def get(self, tenant_id: str, call_id: str) -> CallSession:
        """
        Load a session.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        pass

    @abstractmethod
    async def list_sessions(
        self,
        tenant_id: str,
        started_from: Optional[datetime] = None,
        started_to: Optional[datetime] = None
    ) -> List[CallSession]:
        """List a tenant's sessions, optionally bounded by started_at."""
        pass

    @abstractmethod
    async def update(self, tenant_id: str, call_id: str, mutator: SessionMutator) -> Any:
        """
        Atomically apply mutator to the stored session and persist it.

        If mutator raises, nothing is written and the exception propagates.

        Returns:
            Whatever mutator returned

        Raises:
            SessionNotFoundError: If the session does not exist
            ConcurrentUpdateError: If the backend gave up retrying
        """
        pass

    async def close(self) -> None:
        """Release backend resources"""
        pass

    # ========== Operations built on update() ==========

    async def append_step(
        self,
        tenant_id: str,
        call_id: str,
        step: PathStep,
        skip_duplicate: bool = False
    ) -> Optional[int]:
        """
        Append a step to the session path.

        Returns:
            Index of the new step, or None if skipped as a duplicate
        """
        return await self.update(
            tenant_id,
            call_id,
            lambda session: session.append_step(step, skip_duplicate=skip_duplicate)
        )

    async def record_decision(
        self,
        tenant_id: str,
        call_id: str,
        step_index: int,
        action: str
    ) -> bool:
        """Record the routing action resolved for the step at step_index."""
        return await self.update(
            tenant_id,
            call_id,
            lambda session: session.apply_decision(step_index, action)
        )

    async def finalize(
        self,
        tenant_id: str,
        call_id: str,
        outcome: str,
        tags: List[str],
        cdr: Dict[str, Any],
        metrics: CallMetrics,
        ended_at: datetime
    ) -> CallSession:
        """
        Mark the session completed with its outcome and metrics.

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionAlreadyFinalizedError: If an outcome was already written
        """
        def apply(session: CallSession) -> CallSession:
            session.apply_finalize(outcome, tags, cdr, metrics, ended_at)
            return session

        return await self.update(tenant_id, call_id, apply)

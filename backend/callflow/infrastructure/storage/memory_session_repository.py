"""
In-Memory Session Repository
Process-local session store for development and tests
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from callflow.domain.exceptions import SessionConflictError, SessionNotFoundError
from callflow.domain.interfaces.session_repository import SessionMutator, SessionRepository
from callflow.domain.models.call_session import CallDirection, CallSession

logger = logging.getLogger(__name__)

SessionKey = Tuple[str, str]


class MemorySessionRepository(SessionRepository):
    """
    Dict-backed session store.

    Mutations for one call run under that call's asyncio.Lock, on a deep
    copy that replaces the stored session only if the mutator succeeds.
    Only safe when every writer for a call lives in this process.
    Sessions are kept until close(), with at most one lock per stored session.
    """

    def __init__(self):
        self._sessions: Dict[SessionKey, CallSession] = {}
        self._locks: Dict[SessionKey, asyncio.Lock] = {}
        self._create_lock = asyncio.Lock()

    def _lock_for(self, key: SessionKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks.setdefault(key, asyncio.Lock())
        return lock

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
        key = (tenant_id, call_id)

        async with self._create_lock:
            if key in self._sessions:
                raise SessionConflictError(tenant_id, call_id)

            session = CallSession.start(
                tenant_id=tenant_id,
                call_id=call_id,
                from_number=from_number,
                to_number=to_number,
                did=did,
                started_at=started_at,
                direction=direction,
                external_call_ref=external_call_ref
            )
            self._sessions[key] = session

        logger.debug(f"Created session in memory: tenant_id={tenant_id}, call_id={call_id}")
        return session.model_copy(deep=True)

    async def get(self, tenant_id: str, call_id: str) -> CallSession:
        session = self._sessions.get((tenant_id, call_id))
        if session is None:
            raise SessionNotFoundError(tenant_id, call_id)
        return session.model_copy(deep=True)

    async def list_sessions(
        self,
        tenant_id: str,
        started_from: Optional[datetime] = None,
        started_to: Optional[datetime] = None
    ) -> List[CallSession]:
        sessions = [
            session.model_copy(deep=True)
            for (owner, _), session in self._sessions.items()
            if owner == tenant_id
            and (started_from is None or session.started_at >= started_from)
            and (started_to is None or session.started_at <= started_to)
        ]
        return sorted(sessions, key=lambda s: s.started_at)

    async def update(self, tenant_id: str, call_id: str, mutator: SessionMutator) -> Any:
        key = (tenant_id, call_id)
        if key not in self._sessions:
            raise SessionNotFoundError(tenant_id, call_id)

        async with self._lock_for(key):
            current = self._sessions.get(key)
            if current is None:
                raise SessionNotFoundError(tenant_id, call_id)

            working = current.model_copy(deep=True)
            result = mutator(working)
            working.version = current.version + 1
            self._sessions[key] = working

        return result

    async def close(self) -> None:
        self._sessions.clear()
        self._locks.clear()

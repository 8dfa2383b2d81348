"""
Supabase Session Repository
Persists call sessions in the call_sessions table with compare-and-swap updates
"""
import logging
from datetime import datetime
from typing import Any, List, Optional

from postgrest.exceptions import APIError
from supabase import Client

from callflow.domain.exceptions import (
    ConcurrentUpdateError,
    SessionConflictError,
    SessionNotFoundError,
    SessionStorageError,
)
from callflow.domain.interfaces.session_repository import SessionMutator, SessionRepository
from callflow.domain.models.call_session import CallDirection, CallSession

logger = logging.getLogger(__name__)

TABLE = "call_sessions"
UNIQUE_VIOLATION = "23505"
DEFAULT_MAX_RETRIES = 5

# Key columns are never rewritten by an update
_KEY_COLUMNS = ("tenant_id", "call_id")


class SupabaseSessionRepository(SessionRepository):
    """
    Session store on Supabase/PostgREST.

    Every row carries a version column. An update only matches the row
    if the version is unchanged since it was read; an empty result means
    another writer got there first and the read-modify-write is retried.
    """

    def __init__(self, client: Client, max_retries: int = DEFAULT_MAX_RETRIES):
        self._client = client
        self._max_retries = max_retries

    def _table(self):
        return self._client.table(TABLE)

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

        try:
            response = self._table().insert(session.to_row()).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise SessionConflictError(tenant_id, call_id) from e
            logger.error(
                f"Failed to create call session: tenant_id={tenant_id}, call_id={call_id}: {e}",
                exc_info=True
            )
            raise SessionStorageError(str(e), tenant_id=tenant_id, call_id=call_id) from e

        if response.data:
            return CallSession.from_row(response.data[0])
        return session

    async def get(self, tenant_id: str, call_id: str) -> CallSession:
        try:
            response = self._table().select("*").eq(
                "tenant_id", tenant_id
            ).eq(
                "call_id", call_id
            ).limit(1).execute()
        except APIError as e:
            raise SessionStorageError(str(e), tenant_id=tenant_id, call_id=call_id) from e

        if not response.data:
            raise SessionNotFoundError(tenant_id, call_id)

        return CallSession.from_row(response.data[0])

    async def list_sessions(
        self,
        tenant_id: str,
        started_from: Optional[datetime] = None,
        started_to: Optional[datetime] = None
    ) -> List[CallSession]:
        query = self._table().select("*").eq("tenant_id", tenant_id)
        if started_from:
            query = query.gte("started_at", started_from.isoformat())
        if started_to:
            query = query.lte("started_at", started_to.isoformat())

        try:
            response = query.order("started_at").execute()
        except APIError as e:
            raise SessionStorageError(str(e), tenant_id=tenant_id) from e

        return [CallSession.from_row(row) for row in response.data or []]

    async def update(self, tenant_id: str, call_id: str, mutator: SessionMutator) -> Any:
        for attempt in range(1, self._max_retries + 1):
            session = await self.get(tenant_id, call_id)
            expected_version = session.version

            result = mutator(session)

            payload = session.to_row()
            for column in _KEY_COLUMNS:
                payload.pop(column)
            payload["version"] = expected_version + 1

            try:
                response = self._table().update(payload).eq(
                    "tenant_id", tenant_id
                ).eq(
                    "call_id", call_id
                ).eq(
                    "version", expected_version
                ).execute()
            except APIError as e:
                logger.error(
                    f"Failed to update call session: tenant_id={tenant_id}, call_id={call_id}: {e}",
                    exc_info=True
                )
                raise SessionStorageError(str(e), tenant_id=tenant_id, call_id=call_id) from e

            if response.data:
                return result

            logger.warning(
                f"Call session version changed, retrying ({attempt}/{self._max_retries}): "
                f"tenant_id={tenant_id}, call_id={call_id}, version={expected_version}"
            )

        raise ConcurrentUpdateError(tenant_id, call_id, self._max_retries)

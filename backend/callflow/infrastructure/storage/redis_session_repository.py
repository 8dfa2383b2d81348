"""
Redis Session Repository
Session store backed by Redis with optimistic WATCH/MULTI/EXEC transactions
"""
import json
import logging
from datetime import datetime
from typing import Any, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from callflow.domain.exceptions import (
    ConcurrentUpdateError,
    SessionConflictError,
    SessionNotFoundError,
    SessionStorageError,
)
from callflow.domain.interfaces.session_repository import SessionMutator, SessionRepository
from callflow.domain.models.call_session import CallDirection, CallSession

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "callflow"
DEFAULT_MAX_RETRIES = 5


class RedisSessionRepository(SessionRepository):
    """
    One JSON document per call.

    Keys:
        {prefix}:session:{tenant_id}:{call_id}  session row as JSON
        {prefix}:sessions:{tenant_id}           set of the tenant's call ids

    Concurrent writers for the same call are detected with WATCH; the
    losing transaction is retried up to max_retries times.
    """

    def __init__(
        self,
        client: "redis.Redis",
        key_prefix: str = DEFAULT_KEY_PREFIX,
        max_retries: int = DEFAULT_MAX_RETRIES
    ):
        self._client = client
        self._prefix = key_prefix
        self._max_retries = max_retries

    @classmethod
    def from_url(
        cls,
        redis_url: str,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        max_retries: int = DEFAULT_MAX_RETRIES
    ) -> "RedisSessionRepository":
        client = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        logger.info(f"Redis session store configured: {redis_url}")
        return cls(client, key_prefix=key_prefix, max_retries=max_retries)

    # ========== Keys and encoding ==========

    def _session_key(self, tenant_id: str, call_id: str) -> str:
        return f"{self._prefix}:session:{tenant_id}:{call_id}"

    def _index_key(self, tenant_id: str) -> str:
        return f"{self._prefix}:sessions:{tenant_id}"

    @staticmethod
    def _encode(session: CallSession) -> str:
        return json.dumps(session.to_row())

    @staticmethod
    def _decode(raw: str) -> CallSession:
        return CallSession.from_row(json.loads(raw))

    # ========== SessionRepository ==========

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
            created = await self._client.set(
                self._session_key(tenant_id, call_id),
                self._encode(session),
                nx=True
            )
            if not created:
                raise SessionConflictError(tenant_id, call_id)
            await self._client.sadd(self._index_key(tenant_id), call_id)
        except RedisError as e:
            logger.error(
                f"Redis create failed: tenant_id={tenant_id}, call_id={call_id}: {e}",
                exc_info=True
            )
            raise SessionStorageError(str(e), tenant_id=tenant_id, call_id=call_id) from e

        logger.debug(f"Created session in Redis: tenant_id={tenant_id}, call_id={call_id}")
        return session

    async def get(self, tenant_id: str, call_id: str) -> CallSession:
        try:
            raw = await self._client.get(self._session_key(tenant_id, call_id))
        except RedisError as e:
            raise SessionStorageError(str(e), tenant_id=tenant_id, call_id=call_id) from e

        if raw is None:
            raise SessionNotFoundError(tenant_id, call_id)
        return self._decode(raw)

    async def list_sessions(
        self,
        tenant_id: str,
        started_from: Optional[datetime] = None,
        started_to: Optional[datetime] = None
    ) -> List[CallSession]:
        try:
            call_ids = await self._client.smembers(self._index_key(tenant_id))
            if not call_ids:
                return []
            raws = await self._client.mget(
                [self._session_key(tenant_id, call_id) for call_id in sorted(call_ids)]
            )
        except RedisError as e:
            raise SessionStorageError(str(e), tenant_id=tenant_id) from e

        sessions = [
            session for session in (self._decode(raw) for raw in raws if raw is not None)
            if (started_from is None or session.started_at >= started_from)
            and (started_to is None or session.started_at <= started_to)
        ]
        return sorted(sessions, key=lambda s: s.started_at)

    async def update(self, tenant_id: str, call_id: str, mutator: SessionMutator) -> Any:
        key = self._session_key(tenant_id, call_id)

        for attempt in range(1, self._max_retries + 1):
            try:
                async with self._client.pipeline(transaction=True) as pipe:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        raise SessionNotFoundError(tenant_id, call_id)

                    session = self._decode(raw)
                    result = mutator(session)
                    session.version += 1

                    pipe.multi()
                    pipe.set(key, self._encode(session))
                    await pipe.execute()
                    return result

            except WatchError:
                logger.warning(
                    f"Concurrent session update, retrying ({attempt}/{self._max_retries}): "
                    f"tenant_id={tenant_id}, call_id={call_id}"
                )
            except RedisError as e:
                logger.error(
                    f"Redis update failed: tenant_id={tenant_id}, call_id={call_id}: {e}",
                    exc_info=True
                )
                raise SessionStorageError(str(e), tenant_id=tenant_id, call_id=call_id) from e

        raise ConcurrentUpdateError(tenant_id, call_id, self._max_retries)

    async def close(self) -> None:
        await self._client.aclose()

"""
Call Analytics
Aggregates a tenant's call sessions over a date range
"""
import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from callflow.domain.interfaces.session_repository import SessionRepository
from callflow.domain.models.call_session import (
    CallDirection,
    CallSession,
    CallStatus,
    ensure_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER_SECONDS = 3600


class CallAnalytics(BaseModel):
    """Aggregate view of a tenant's calls"""
    total_calls: int = 0
    completed_calls: int = 0
    active_calls: int = 0
    stale_active_calls: int = Field(0, description="Active calls with no log event after the stale threshold")
    failed_calls: int = 0
    inbound_calls: int = 0
    outbound_calls: int = 0
    average_duration: float = Field(0.0, description="Mean duration of completed calls, seconds")
    average_steps: float = Field(0.0, description="Mean path length across all calls")
    by_outcome: Dict[str, int] = Field(default_factory=dict)
    by_tag: Dict[str, int] = Field(default_factory=dict)

    def to_response(self) -> dict:
        return {
            "totalCalls": self.total_calls,
            "completedCalls": self.completed_calls,
            "activeCalls": self.active_calls,
            "staleActiveCalls": self.stale_active_calls,
            "failedCalls": self.failed_calls,
            "inboundCalls": self.inbound_calls,
            "outboundCalls": self.outbound_calls,
            "averageDuration": self.average_duration,
            "averageSteps": self.average_steps,
            "byOutcome": dict(self.by_outcome),
            "byTag": dict(self.by_tag),
        }


class CallAnalyticsService:
    """
    Summarizes stored sessions.

    Sessions whose log event never arrived stay active forever; they are
    counted as stale once older than stale_after_seconds but never modified.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        stale_after_seconds: int = DEFAULT_STALE_AFTER_SECONDS,
        clock: Callable[[], datetime] = utcnow
    ):
        self._sessions = sessions
        self._stale_after_seconds = stale_after_seconds
        self._clock = clock

    async def summarize(
        self,
        tenant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> CallAnalytics:
        """
        Build analytics for calls started within [start, end].

        Args:
            tenant_id: Tenant identifier
            start: Earliest started_at (inclusive), unbounded if None
            end: Latest started_at (inclusive), unbounded if None
        """
        sessions = await self._sessions.list_sessions(tenant_id, ensure_utc(start), ensure_utc(end))
        analytics = self._aggregate(sessions)

        logger.info(
            f"Analytics for tenant_id={tenant_id}: {analytics.total_calls} calls, "
            f"{analytics.stale_active_calls} stale"
        )
        return analytics

    def _aggregate(self, sessions: List[CallSession]) -> CallAnalytics:
        if not sessions:
            return CallAnalytics()

        now = self._clock()
        status_counts = Counter(session.status for session in sessions)
        direction_counts = Counter(session.direction for session in sessions)
        outcomes = Counter(session.outcome for session in sessions if session.outcome)
        tags = Counter(tag for session in sessions for tag in session.tags)

        stale = sum(
            1 for session in sessions
            if session.status == CallStatus.ACTIVE
            and session.elapsed_seconds(now) > self._stale_after_seconds
        )

        durations = [
            session.duration_seconds for session in sessions
            if session.status == CallStatus.COMPLETED and session.duration_seconds is not None
        ]
        average_duration = sum(durations) / len(durations) if durations else 0.0
        average_steps = sum(len(session.path) for session in sessions) / len(sessions)

        return CallAnalytics(
            total_calls=len(sessions),
            completed_calls=status_counts[CallStatus.COMPLETED],
            active_calls=status_counts[CallStatus.ACTIVE],
            stale_active_calls=stale,
            failed_calls=status_counts[CallStatus.FAILED],
            inbound_calls=direction_counts[CallDirection.INBOUND],
            outbound_calls=direction_counts[CallDirection.OUTBOUND],
            average_duration=round(average_duration, 2),
            average_steps=round(average_steps, 2),
            by_outcome=dict(outcomes),
            by_tag=dict(tags),
        )

"""
Outcome Classifier
Derives the outcome, tags and metrics of a call from its path at termination
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from callflow.domain.exceptions import SessionAlreadyFinalizedError
from callflow.domain.interfaces.session_repository import SessionRepository
from callflow.domain.models.call_session import CallMetrics, CallSession, utcnow
from callflow.domain.models.outcome import CallOutcome, OutcomeSummary, OUTCOME_RULES

logger = logging.getLogger(__name__)


def effective_last_action(session: CallSession) -> Optional[str]:
    """
    Action used to classify the call.

    The last step's own action when it is a routing action. An event step
    (e.g. no_answer) carries the event name instead, so the routing action
    recorded for that step is used.
    """
    last = session.last_step
    if last is None:
        return None

    if last.action in OUTCOME_RULES:
        return last.action

    if session.last_action is not None and session.last_action_step == len(session.path) - 1:
        return session.last_action

    return last.action


def classify(action: Optional[str]) -> Tuple[CallOutcome, List[str]]:
    """Map an action to (outcome, tags)."""
    outcome, tag = OUTCOME_RULES.get(action, (CallOutcome.UNKNOWN, None))
    return outcome, [tag] if tag else []


def compute_metrics(session: CallSession, now: datetime) -> CallMetrics:
    """Step counts and whole-second duration."""
    actions = [step.action for step in session.path]
    duration = max(0, round(session.elapsed_seconds(now)))

    return CallMetrics(
        total_steps=len(actions),
        ai_steps=sum(1 for action in actions if "ai" in action),
        api_calls=sum(1 for action in actions if "api" in action),
        duration_seconds=duration,
    )


class OutcomeClassifier:
    """
    Finalizes calls on the terminal log webhook.

    Finalize is written once. A repeated log for a completed call returns
    the stored summary and leaves outcome and metrics untouched.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        clock: Callable[[], datetime] = utcnow
    ):
        self._sessions = sessions
        self._clock = clock

    async def finalize_call(
        self,
        tenant_id: str,
        call_id: str,
        cdr: Optional[Dict[str, Any]] = None
    ) -> OutcomeSummary:
        """
        Classify and persist the outcome of a call.

        Args:
            tenant_id: Tenant identifier
            call_id: Call identifier
            cdr: Call detail record from the provider

        Returns:
            OutcomeSummary with outcome, tags and metrics

        Raises:
            SessionNotFoundError: If the call does not exist
        """
        session = await self._sessions.get(tenant_id, call_id)

        if session.is_finalized:
            logger.warning(
                f"Call already finalized, returning stored outcome: "
                f"tenant_id={tenant_id}, call_id={call_id}, outcome={session.outcome}"
            )
            return OutcomeSummary.from_session(session)

        now = self._clock()
        action = effective_last_action(session)
        outcome, tags = classify(action)
        metrics = compute_metrics(session, now)

        try:
            finalized = await self._sessions.finalize(
                tenant_id,
                call_id,
                outcome=outcome.value,
                tags=tags,
                cdr=cdr or {},
                metrics=metrics,
                ended_at=now
            )
        except SessionAlreadyFinalizedError:
            # Lost the race to a concurrent log delivery
            logger.warning(
                f"Concurrent finalize detected, returning stored outcome: "
                f"tenant_id={tenant_id}, call_id={call_id}"
            )
            return OutcomeSummary.from_session(await self._sessions.get(tenant_id, call_id))

        logger.info(
            f"Call finalized: tenant_id={tenant_id}, call_id={call_id}, "
            f"outcome={outcome.value}, duration={metrics.duration_seconds}s, "
            f"steps={metrics.total_steps}"
        )
        return OutcomeSummary.from_session(finalized)

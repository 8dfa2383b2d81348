"""
IVR Dispatcher
Webhook-driven routing state machine for inbound calls.

Conceptual states:
    Entry -> Gathering -> {ExtensionRouting, DepartmentRouting, AIHandoff, Voicemail}
          -> Terminal(Answered | Hangup | Voicemail | Failed)

The dispatcher keeps no state between calls. Everything it knows about a
call lives in the session path, and every received event is appended to
that path before a routing decision is made.
"""
import uuid
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from callflow.domain.exceptions import SessionNotFoundError
from callflow.domain.interfaces.session_repository import SessionRepository
from callflow.domain.models.call_session import (
    EVENT_NODE,
    FLOW_NODE,
    PathStep,
    utcnow,
)
from callflow.domain.models.ivr_event import (
    DuplicateEventPolicy,
    IvrEventType,
    RoutingDecision,
)
from callflow.domain.models.ivr_flow import FlowOption, RoutingAction
from callflow.domain.services.directory_lookup import DirectoryLookup
from callflow.domain.services.flow_resolver import FlowResolver

logger = logging.getLogger(__name__)


# Prompts and messages returned with fallback decisions
UNRECOGNIZED_OPTION_PROMPT = "I didn't recognize that option. How can I help you?"
EXTENSION_NOT_FOUND_PROMPT = "Extension not found. How can I help you?"
DEPARTMENT_UNAVAILABLE_MESSAGE = "Department not available. Please leave a message."
AI_HANDOFF_PROMPT = "How can I assist you today?"
AI_DEFAULT_MODEL = "default"

# Terminal fallbacks for unsuccessful call attempts
VOICEMAIL_MESSAGES: Dict[IvrEventType, str] = {
    IvrEventType.NO_ANSWER: "No one is available to take your call. Please leave a message.",
    IvrEventType.BUSY: "The line is busy. Please leave a message.",
    IvrEventType.FAILED: "Unable to complete your call. Please leave a message.",
    IvrEventType.TIMEOUT: "No response received. Please leave a message.",
}

EventHandler = Callable[[str, Dict[str, Any]], Awaitable[RoutingDecision]]


def generate_call_id() -> str:
    """Opaque, collision-resistant call correlation id."""
    return str(uuid.uuid4())


class IvrDispatcher:
    """
    Consumes IVR webhooks and returns the next routing action.

    Side effects are limited to the session repository; the returned
    decision is advisory and executed by the call-control collaborator.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        flow_resolver: FlowResolver,
        directory: DirectoryLookup,
        duplicate_policy: DuplicateEventPolicy = DuplicateEventPolicy.RECORD,
        call_id_factory: Callable[[], str] = generate_call_id,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Initialize the dispatcher.

        Args:
            sessions: Session store
            flow_resolver: Active flow resolution
            directory: Extension and department lookups
            duplicate_policy: How redelivered events are recorded
            call_id_factory: Generates new call ids
            clock: Source of step timestamps
        """
        self._sessions = sessions
        self._flow_resolver = flow_resolver
        self._directory = directory
        self._duplicate_policy = DuplicateEventPolicy(duplicate_policy)
        self._call_id_factory = call_id_factory
        self._clock = clock
        self._handlers = self._build_handlers()

    def _build_handlers(self) -> Dict[IvrEventType, EventHandler]:
        """Map every event kind to its handler."""
        handlers: Dict[IvrEventType, EventHandler] = {
            IvrEventType.DTMF_MENU: self._on_dtmf_menu,
            IvrEventType.EXTENSION_DIAL: self._on_extension_dial,
            IvrEventType.DEPT_DIAL: self._on_dept_dial,
            IvrEventType.AI_HANDOFF: self._on_ai_handoff,
            IvrEventType.ANSWERED: self._on_answered,
            **{event_type: self._voicemail_handler(message) for event_type, message in VOICEMAIL_MESSAGES.items()},
            IvrEventType.UNKNOWN: self._on_unknown,
        }

        missing = set(IvrEventType) - set(handlers)
        if missing:
            raise RuntimeError(f"No handler for IVR event types: {sorted(m.value for m in missing)}")

        return handlers

    @property
    def handled_event_types(self) -> set:
        return set(self._handlers)

    # =========================================================================
    # Entry
    # =========================================================================

    async def handle_entry(
        self,
        tenant_id: str,
        did: str,
        from_number: str,
        to_number: str,
        ts: Optional[datetime] = None,
        external_call_ref: Optional[str] = None
    ) -> Tuple[str, RoutingDecision]:
        """
        Start a new inbound call.

        1. Resolve the active flow
        2. Generate a call id and create the session (path: call_received)
        3. Record which flow was selected
        4. Return a gather action built from the flow

        Args:
            tenant_id: Tenant the DID belongs to
            did: Dialed number
            from_number: Caller
            to_number: Called number
            ts: When the provider saw the call (defaults to now)
            external_call_ref: Provider call id, if supplied

        Returns:
            (call_id, gather decision)
        """
        flow = await self._flow_resolver.resolve_active_flow(tenant_id)
        call_id = self._call_id_factory()

        await self._sessions.create(
            tenant_id=tenant_id,
            call_id=call_id,
            from_number=from_number,
            to_number=to_number,
            did=did,
            started_at=ts or self._clock(),
            external_call_ref=external_call_ref
        )

        await self._sessions.append_step(
            tenant_id,
            call_id,
            PathStep(
                node_id=FLOW_NODE,
                action="ivr_greeting",
                at=self._clock(),
                data={"flow": flow.name}
            )
        )

        logger.info(
            f"IVR entry: tenant_id={tenant_id}, call_id={call_id}, did={did}, flow={flow.name}"
        )

        return call_id, RoutingDecision(action=RoutingAction.GATHER, params=flow.gather_params())

    # =========================================================================
    # Events
    # =========================================================================

    async def handle_event(
        self,
        tenant_id: str,
        call_id: str,
        event: str,
        data: Optional[Dict[str, Any]] = None
    ) -> RoutingDecision:
        """
        Record an event and resolve the next action.

        The event step is appended before any routing lookup, so the audit
        trail holds every received event even when routing falls back.
        An unknown call_id is tolerated: routing still runs, nothing is
        recorded.

        Args:
            tenant_id: Tenant identifier
            call_id: Call identifier from the entry response
            event: Event name as sent by the provider
            data: Event payload

        Returns:
            RoutingDecision for the call-control collaborator
        """
        data = data or {}
        step_index = await self._record_event(tenant_id, call_id, event, data)

        event_type = IvrEventType.parse(event)
        decision = await self._handlers[event_type](tenant_id, data)

        if step_index is not None:
            await self._sessions.record_decision(tenant_id, call_id, step_index, decision.action)

        logger.info(
            f"IVR event: tenant_id={tenant_id}, call_id={call_id}, event={event}, "
            f"action={decision.action}"
        )
        return decision

    async def _record_event(
        self,
        tenant_id: str,
        call_id: str,
        event: str,
        data: Dict[str, Any]
    ) -> Optional[int]:
        """Append the event step. Returns its index, or None if nothing was appended."""
        step = PathStep(node_id=EVENT_NODE, action=event, at=self._clock(), data=data)
        skip_duplicate = self._duplicate_policy == DuplicateEventPolicy.SKIP_CONSECUTIVE

        try:
            step_index = await self._sessions.append_step(
                tenant_id, call_id, step, skip_duplicate=skip_duplicate
            )
        except SessionNotFoundError:
            logger.warning(
                f"IVR event for unknown session: tenant_id={tenant_id}, call_id={call_id}, "
                f"event={event}"
            )
            return None

        if step_index is None:
            logger.warning(
                f"Duplicate IVR event skipped: tenant_id={tenant_id}, call_id={call_id}, "
                f"event={event}"
            )

        return step_index

    # =========================================================================
    # Event Handlers
    # =========================================================================

    async def _on_dtmf_menu(self, tenant_id: str, data: Dict[str, Any]) -> RoutingDecision:
        """Menu option first, then extension by number, then AI."""
        flow = await self._flow_resolver.resolve_active_flow(tenant_id)
        digit = data.get("digit")

        if digit is None or str(digit) == "":
            # No input collected
            return self._from_option(flow.default_option or flow.fallback)

        digit = str(digit)
        option = flow.option_for(digit)
        if option:
            return self._from_option(option)

        extension = await self._directory.find_extension(tenant_id, digit)
        if extension:
            return RoutingDecision(action=RoutingAction.EXTENSION, params=extension.routing_params())

        return RoutingDecision(action=RoutingAction.AI, params={"prompt": UNRECOGNIZED_OPTION_PROMPT})

    async def _on_extension_dial(self, tenant_id: str, data: Dict[str, Any]) -> RoutingDecision:
        number = data.get("extension")
        if number is None or str(number) == "":
            return await self._flow_fallback(tenant_id)

        extension = await self._directory.find_extension(tenant_id, str(number))
        if extension:
            return RoutingDecision(action=RoutingAction.EXTENSION, params=extension.routing_params())

        return RoutingDecision(action=RoutingAction.AI, params={"prompt": EXTENSION_NOT_FOUND_PROMPT})

    async def _on_dept_dial(self, tenant_id: str, data: Dict[str, Any]) -> RoutingDecision:
        name = data.get("department")
        if not name:
            return await self._flow_fallback(tenant_id)

        department = await self._directory.find_department(tenant_id, str(name))
        if department:
            return RoutingDecision(action=RoutingAction.DEPT, params=department.routing_params())

        return RoutingDecision(
            action=RoutingAction.VOICEMAIL,
            params={"message": DEPARTMENT_UNAVAILABLE_MESSAGE}
        )

    async def _on_ai_handoff(self, tenant_id: str, data: Dict[str, Any]) -> RoutingDecision:
        return RoutingDecision(
            action=RoutingAction.AI,
            params={
                "prompt": data.get("prompt") or AI_HANDOFF_PROMPT,
                "model": data.get("model") or AI_DEFAULT_MODEL,
            }
        )

    async def _on_answered(self, tenant_id: str, data: Dict[str, Any]) -> RoutingDecision:
        return RoutingDecision(
            action=RoutingAction.ANSWERED,
            params={
                "duration": data.get("duration") or 0,
                "answeredBy": data.get("answeredBy") or "unknown",
            }
        )

    @staticmethod
    def _voicemail_handler(message: str) -> EventHandler:
        """Handler for an unsuccessful attempt: send the caller to voicemail."""
        async def handler(tenant_id: str, data: Dict[str, Any]) -> RoutingDecision:
            return RoutingDecision(action=RoutingAction.VOICEMAIL, params={"message": message})
        return handler

    async def _on_unknown(self, tenant_id: str, data: Dict[str, Any]) -> RoutingDecision:
        return RoutingDecision(action=RoutingAction.HANGUP, params={"reason": "unknown_event"})

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _flow_fallback(self, tenant_id: str) -> RoutingDecision:
        flow = await self._flow_resolver.resolve_active_flow(tenant_id)
        return self._from_option(flow.fallback)

    @staticmethod
    def _from_option(option: Optional[FlowOption]) -> RoutingDecision:
        if option is None:
            return RoutingDecision(action=RoutingAction.HANGUP, params={"reason": "no_route"})
        return RoutingDecision(action=option.action, params=dict(option.params))

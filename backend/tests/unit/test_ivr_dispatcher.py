"""
Unit tests for the IVR Dispatcher
Tests the entry flow and the event routing precedence table
"""
import pytest
from datetime import datetime, timedelta, timezone

from callflow.domain.models.directory import Department, Extension
from callflow.domain.models.ivr_event import DuplicateEventPolicy, IvrEventType
from callflow.domain.models.ivr_flow import (
    DEFAULT_AI_PROMPT,
    DEFAULT_GREETING,
    DEFAULT_VOICEMAIL_MESSAGE,
    FlowConfig,
)
from callflow.domain.services.directory_lookup import DirectoryLookup
from callflow.domain.services.flow_resolver import FlowResolver
from callflow.domain.services.ivr_dispatcher import (
    EXTENSION_NOT_FOUND_PROMPT,
    UNRECOGNIZED_OPTION_PROMPT,
    IvrDispatcher,
)
from callflow.infrastructure.storage.memory_directory import MemoryDirectoryProvider
from callflow.infrastructure.storage.memory_session_repository import MemorySessionRepository


NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

DIAL_PLAN = {
    "type": "simultaneous",
    "destinations": [{"type": "sip", "address": "sip:101@pbx.example.com"}],
    "timeout": 20,
    "fallback": "voicemail",
}

CUSTOM_FLOW = {
    "name": "Main menu",
    "greeting": "Thanks for calling Acme.",
    "timeout": 5,
    "max_digits": 3,
    "retries": 2,
    "options": {
        "1": {"action": "dept", "params": {"department": "Sales"}},
        "0": {"action": "voicemail", "params": {"message": "Leave a message."}},
        "default": {"action": "ai", "params": {"prompt": "Acme assistant here."}},
    },
    "fallback": {"action": "hangup", "params": {"reason": "no_route"}},
}


class Clock:
    """Deterministic clock for step timestamps"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_dispatcher(directory=None, sessions=None, policy=DuplicateEventPolicy.RECORD):
    directory = directory or MemoryDirectoryProvider()
    sessions = sessions or MemorySessionRepository()
    call_ids = iter(f"call-{i}" for i in range(1, 100))

    dispatcher = IvrDispatcher(
        sessions=sessions,
        flow_resolver=FlowResolver(directory),
        directory=DirectoryLookup(directory),
        duplicate_policy=policy,
        call_id_factory=lambda: next(call_ids),
        clock=Clock(NOW)
    )
    return dispatcher, sessions, directory


async def enter(dispatcher, tenant_id: str = "T1"):
    return await dispatcher.handle_entry(
        tenant_id=tenant_id,
        did="+15551230000",
        from_number="+15559876543",
        to_number="+15551230000"
    )


@pytest.fixture
def setup():
    return make_dispatcher()


@pytest.fixture
def custom_setup():
    directory = MemoryDirectoryProvider()
    directory.add_flow("T1", FlowConfig.from_config(CUSTOM_FLOW))
    return make_dispatcher(directory=directory)


class TestEntry:
    """Tests for handle_entry"""

    @pytest.mark.asyncio
    async def test_entry_with_default_flow(self, setup):
        """Test gather params of the built-in default flow"""
        dispatcher, sessions, _ = setup

        call_id, decision = await enter(dispatcher)

        assert call_id == "call-1"
        assert decision.action == "gather"
        assert decision.params["greeting"] == DEFAULT_GREETING
        assert decision.params["timeout"] == 10
        assert decision.params["max_digits"] == 4
        assert decision.params["retries"] == 3
        assert decision.params["options"]["1"] == {"action": "dept", "params": {"department": "Sales"}}

    @pytest.mark.asyncio
    async def test_entry_records_flow_selection(self, setup):
        """Test that entry writes call_received and the flow-selection step"""
        dispatcher, sessions, _ = setup

        call_id, _ = await enter(dispatcher)
        session = await sessions.get("T1", call_id)

        assert [step.node_id for step in session.path] == ["entry", "ivr_entry"]
        assert session.path[1].data == {"flow": "default"}
        assert session.started_at == NOW

    @pytest.mark.asyncio
    async def test_entry_uses_active_flow(self, custom_setup):
        """Test gather params of a configured flow"""
        dispatcher, sessions, _ = custom_setup

        call_id, decision = await enter(dispatcher)
        session = await sessions.get("T1", call_id)

        assert decision.params["greeting"] == "Thanks for calling Acme."
        assert decision.params["max_digits"] == 3
        assert session.path[1].data == {"flow": "Main menu"}

    @pytest.mark.asyncio
    async def test_entry_keeps_provider_timestamp_and_ref(self, setup):
        """Test ts and external call reference are stored"""
        dispatcher, sessions, _ = setup
        received = NOW - timedelta(seconds=3)

        call_id, _ = await dispatcher.handle_entry(
            "T1", "+15551230000", "+15559876543", "+15551230000",
            ts=received, external_call_ref="CA-42"
        )
        session = await sessions.get("T1", call_id)

        assert session.started_at == received
        assert session.external_call_ref == "CA-42"


class TestDtmfMenu:
    """Tests for dtmf_menu precedence: flow option, extension, AI"""

    @pytest.mark.asyncio
    async def test_flow_option_wins(self, custom_setup):
        """Test that a configured option is returned exactly"""
        dispatcher, _, directory = custom_setup
        directory.add_extension(Extension(
            tenant_id="T1", extension_number="1", name="Shadowed", dial_plan=DIAL_PLAN
        ))
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "dtmf_menu", {"digit": "1"})

        assert decision.action == "dept"
        assert decision.params == {"department": "Sales"}

    @pytest.mark.asyncio
    async def test_extension_when_no_option(self, custom_setup):
        """Test routing a digit string to an active extension"""
        dispatcher, _, directory = custom_setup
        directory.add_extension(Extension(
            tenant_id="T1", extension_number="101", name="Alice", dial_plan=DIAL_PLAN
        ))
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "dtmf_menu", {"digit": "101"})

        assert decision.action == "extension"
        assert decision.params["extension"] == "101"
        assert decision.params["name"] == "Alice"
        assert decision.params["dialPlan"]["destinations"] == [
            {"type": "sip", "address": "sip:101@pbx.example.com"}
        ]

    @pytest.mark.asyncio
    async def test_unrecognized_digit_goes_to_ai(self, setup):
        """Test fallback prompt for an unknown digit"""
        dispatcher, _, _ = setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "dtmf_menu", {"digit": "9"})

        assert decision.action == "ai"
        assert decision.params == {"prompt": UNRECOGNIZED_OPTION_PROMPT}

    @pytest.mark.asyncio
    async def test_inactive_extension_is_not_matched(self, setup):
        """Test that an inactive extension falls through to AI"""
        dispatcher, _, directory = setup
        directory.add_extension(Extension(
            tenant_id="T1", extension_number="9", name="Gone", status="inactive", dial_plan=DIAL_PLAN
        ))
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "dtmf_menu", {"digit": "9"})
        assert decision.action == "ai"

    @pytest.mark.asyncio
    async def test_numeric_digit_is_coerced(self, setup):
        """Test that a digit sent as a number matches the option"""
        dispatcher, _, _ = setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "dtmf_menu", {"digit": 2})
        assert decision.params == {"department": "Support"}

    @pytest.mark.asyncio
    async def test_no_digit_uses_default_option(self, setup):
        """Test that missing input applies the flow default option"""
        dispatcher, _, _ = setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "dtmf_menu", {})

        assert decision.action == "ai"
        assert decision.params == {"prompt": DEFAULT_AI_PROMPT}


class TestDialEvents:
    """Tests for extension_dial and dept_dial"""

    @pytest.mark.asyncio
    async def test_extension_dial_found(self, setup):
        """Test dialing an active extension"""
        dispatcher, _, directory = setup
        directory.add_extension(Extension(
            tenant_id="T1", extension_number="205", name="Bob", dial_plan=DIAL_PLAN
        ))
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "extension_dial", {"extension": "205"})

        assert decision.action == "extension"
        assert decision.params["name"] == "Bob"

    @pytest.mark.asyncio
    async def test_extension_dial_not_found(self, setup):
        """Test unknown extension falls back to AI"""
        dispatcher, _, _ = setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "extension_dial", {"extension": "999"})

        assert decision.action == "ai"
        assert decision.params == {"prompt": EXTENSION_NOT_FOUND_PROMPT}

    @pytest.mark.asyncio
    async def test_extension_dial_without_number_uses_flow_fallback(self, setup):
        """Test missing extension identifier"""
        dispatcher, _, _ = setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "extension_dial", {})

        assert decision.action == "voicemail"
        assert decision.params == {"message": DEFAULT_VOICEMAIL_MESSAGE}

    @pytest.mark.asyncio
    async def test_dept_dial_found(self, setup):
        """Test department routing with greeting and members"""
        dispatcher, _, directory = setup
        directory.add_department(Department(id="d1", tenant_id="T1", name="Sales"))
        directory.add_extension(Extension(
            tenant_id="T1", extension_number="301", name="Carol", department_id="d1", dial_plan=DIAL_PLAN
        ))
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "dept_dial", {"department": "Sales"})

        assert decision.action == "dept"
        assert decision.params["department"] == "Sales"
        assert decision.params["greeting"] == "Connecting you to Sales"
        assert [ext["extension"] for ext in decision.params["extensions"]] == ["301"]

    @pytest.mark.asyncio
    async def test_dept_dial_not_found(self, setup):
        """Test unknown department goes to voicemail"""
        dispatcher, _, _ = setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "dept_dial", {"department": "Legal"})

        assert decision.action == "voicemail"
        assert decision.params == {"message": "Department not available. Please leave a message."}

    @pytest.mark.asyncio
    async def test_dept_dial_without_name_uses_flow_fallback(self, custom_setup):
        """Test missing department identifier uses the configured fallback"""
        dispatcher, _, _ = custom_setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "dept_dial", {})

        assert decision.action == "hangup"
        assert decision.params == {"reason": "no_route"}


class TestTerminalEvents:
    """Tests for AI handoff, answered, unsuccessful attempts and unknown events"""

    @pytest.mark.asyncio
    async def test_ai_handoff_defaults(self, setup):
        """Test AI handoff default prompt and model"""
        dispatcher, _, _ = setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "ai_handoff")

        assert decision.action == "ai"
        assert decision.params == {"prompt": "How can I assist you today?", "model": "default"}

    @pytest.mark.asyncio
    async def test_ai_handoff_passes_prompt_and_model(self, setup):
        """Test AI handoff with explicit values"""
        dispatcher, _, _ = setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event(
            "T1", call_id, "ai_handoff", {"prompt": "Billing help", "model": "fast"}
        )
        assert decision.params == {"prompt": "Billing help", "model": "fast"}

    @pytest.mark.asyncio
    async def test_answered_defaults(self, setup):
        """Test answered params"""
        dispatcher, _, _ = setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "answered", {"duration": 30})

        assert decision.action == "answered"
        assert decision.params == {"duration": 30, "answeredBy": "unknown"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event,message", [
        ("no_answer", "No one is available to take your call. Please leave a message."),
        ("busy", "The line is busy. Please leave a message."),
        ("failed", "Unable to complete your call. Please leave a message."),
        ("timeout", "No response received. Please leave a message."),
    ])
    async def test_unsuccessful_attempts_go_to_voicemail(self, setup, event, message):
        """Test voicemail message per unsuccessful attempt"""
        dispatcher, _, _ = setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, event)

        assert decision.action == "voicemail"
        assert decision.params == {"message": message}

    @pytest.mark.asyncio
    async def test_unknown_event_hangs_up(self, setup):
        """Test unknown event names"""
        dispatcher, sessions, _ = setup
        call_id, _ = await enter(dispatcher)

        decision = await dispatcher.handle_event("T1", call_id, "fax_tone", {"x": 1})

        assert decision.action == "hangup"
        assert decision.params == {"reason": "unknown_event"}
        # Still recorded verbatim
        assert (await sessions.get("T1", call_id)).path[-1].action == "fax_tone"

    def test_every_event_type_has_a_handler(self, setup):
        """Test that the handler table is exhaustive"""
        dispatcher, _, _ = setup
        assert dispatcher.handled_event_types == set(IvrEventType)


class TestAuditTrail:
    """Tests for path recording"""

    @pytest.mark.asyncio
    async def test_path_grows_by_one_per_event(self, setup):
        """Test path length after each event"""
        dispatcher, sessions, _ = setup
        call_id, _ = await enter(dispatcher)

        events = [("dtmf_menu", {"digit": "7"}), ("extension_dial", {"extension": "1"}), ("busy", {})]
        for expected, (event, data) in enumerate(events, start=3):
            await dispatcher.handle_event("T1", call_id, event, data)
            assert len((await sessions.get("T1", call_id)).path) == expected

    @pytest.mark.asyncio
    async def test_event_step_and_decision_recorded(self, setup):
        """Test the event step shape and the recorded routing action"""
        dispatcher, sessions, _ = setup
        call_id, _ = await enter(dispatcher)

        await dispatcher.handle_event("T1", call_id, "no_answer", {"attempt": 1})
        session = await sessions.get("T1", call_id)

        step = session.path[-1]
        assert (step.node_id, step.action, step.data) == ("ivr_event", "no_answer", {"attempt": 1})
        assert step.at == NOW
        assert session.last_action == "voicemail"
        assert session.last_action_step == 2

    @pytest.mark.asyncio
    async def test_duplicates_recorded_by_default(self, setup):
        """Test raw-audit policy keeps redelivered events"""
        dispatcher, sessions, _ = setup
        call_id, _ = await enter(dispatcher)

        await dispatcher.handle_event("T1", call_id, "busy")
        await dispatcher.handle_event("T1", call_id, "busy")

        assert len((await sessions.get("T1", call_id)).path) == 4

    @pytest.mark.asyncio
    async def test_skip_consecutive_policy(self):
        """Test that an identical redelivery is not appended but still routed"""
        dispatcher, sessions, _ = make_dispatcher(policy=DuplicateEventPolicy.SKIP_CONSECUTIVE)
        call_id, _ = await enter(dispatcher)

        first = await dispatcher.handle_event("T1", call_id, "busy")
        second = await dispatcher.handle_event("T1", call_id, "busy")

        assert first == second
        assert len((await sessions.get("T1", call_id)).path) == 3

    @pytest.mark.asyncio
    async def test_event_for_unknown_call_still_routes(self, setup):
        """Test that events for unknown sessions are tolerated"""
        dispatcher, sessions, _ = setup

        decision = await dispatcher.handle_event("T1", "never-entered", "dtmf_menu", {"digit": "1"})

        assert decision.action == "dept"
        assert await sessions.list_sessions("T1") == []

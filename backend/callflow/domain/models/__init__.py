"""Domain models"""

# Session models
from .call_session import (
    CallStatus,
    CallDirection,
    PathStep,
    CallMetrics,
    CallSession,
)

# Flow configuration
from .ivr_flow import (
    RoutingAction,
    FlowOption,
    FlowConfig,
    default_flow,
)

# Directory
from .directory import (
    ExtensionStatus,
    DialPlanType,
    DialDestination,
    DialPlan,
    Extension,
    Department,
)

# Events and outcomes
from .ivr_event import (
    IvrEventType,
    DuplicateEventPolicy,
    RoutingDecision,
)
from .outcome import (
    CallOutcome,
    OutcomeSummary,
)

__all__ = [
    # Session models
    "CallStatus",
    "CallDirection",
    "PathStep",
    "CallMetrics",
    "CallSession",
    # Flow configuration
    "RoutingAction",
    "FlowOption",
    "FlowConfig",
    "default_flow",
    # Directory
    "ExtensionStatus",
    "DialPlanType",
    "DialDestination",
    "DialPlan",
    "Extension",
    "Department",
    # Events and outcomes
    "IvrEventType",
    "DuplicateEventPolicy",
    "RoutingDecision",
    "CallOutcome",
    "OutcomeSummary",
]

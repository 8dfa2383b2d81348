"""
IVR Flow Models
Tenant flow configuration: greeting, digit menu and fallbacks
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any
from enum import Enum


class RoutingAction(str, Enum):
    """Actions the engine can hand to the call-control collaborator"""
    GATHER = "gather"          # Play greeting and collect digits
    DEPT = "dept"              # Ring a department
    EXTENSION = "extension"    # Ring an extension via its dial plan
    AI = "ai"                  # Hand the caller to the AI agent
    VOICEMAIL = "voicemail"    # Record a message
    ANSWERED = "answered"      # Terminal: call was answered
    HANGUP = "hangup"          # Terminal: end the call


# Key under which the default option is persisted inside flow options
DEFAULT_OPTION_KEY = "default"

DEFAULT_FLOW_NAME = "default"
DEFAULT_GREETING = (
    "Welcome. Please press 1 for Sales, 2 for Support, 3 for Billing, or dial an extension."
)
DEFAULT_AI_PROMPT = "I can help you connect to the right department. What can I assist you with?"
DEFAULT_VOICEMAIL_MESSAGE = "Please leave a message and we'll get back to you."


class FlowOption(BaseModel):
    """Menu option: an action plus its parameters"""
    model_config = ConfigDict(use_enum_values=True)

    action: RoutingAction = Field(..., description="Routing action for this option")
    params: Dict[str, Any] = Field(default_factory=dict, description="Action parameters")

    def to_dict(self) -> dict:
        return {"action": self.action, "params": dict(self.params)}


class FlowConfig(BaseModel):
    """
    Active IVR flow for a tenant.

    Persisted as the flow_config JSON column of ivr_flows, where the
    default option lives inside options under the "default" key and
    max_digits is snake_case.
    """
    name: str = Field(default=DEFAULT_FLOW_NAME, description="Flow name")
    greeting: str = Field(..., description="Greeting played before gathering digits")
    timeout: int = Field(default=10, ge=0, description="Seconds to wait for input")
    max_digits: int = Field(default=4, ge=1, description="Maximum digits collected")
    retries: int = Field(default=3, ge=0, description="Prompt retries")
    options: Dict[str, FlowOption] = Field(default_factory=dict, description="Digit -> option")
    default_option: Optional[FlowOption] = Field(None, description="Used when no digit was entered")
    fallback: Optional[FlowOption] = Field(None, description="Used when nothing else applies")

    @classmethod
    def from_config(cls, config: Dict[str, Any], name: Optional[str] = None) -> "FlowConfig":
        """
        Parse a persisted flow_config object.

        Raises:
            pydantic.ValidationError: If the stored configuration is malformed
        """
        options = dict(config.get("options") or {})
        default_option = options.pop(DEFAULT_OPTION_KEY, None)

        return cls(
            name=config.get("name") or name or DEFAULT_FLOW_NAME,
            greeting=config.get("greeting"),
            timeout=config.get("timeout", 10),
            max_digits=config.get("max_digits", config.get("maxDigits", 4)),
            retries=config.get("retries", 3),
            options={str(digit): option for digit, option in options.items()},
            default_option=default_option,
            fallback=config.get("fallback"),
        )

    def option_for(self, digit: str) -> Optional[FlowOption]:
        """Return the option configured for a digit, if any."""
        return self.options.get(digit)

    def options_payload(self) -> Dict[str, dict]:
        """Options in persisted shape, including the default key."""
        payload = {digit: option.to_dict() for digit, option in self.options.items()}
        if self.default_option:
            payload[DEFAULT_OPTION_KEY] = self.default_option.to_dict()
        return payload

    def gather_params(self) -> Dict[str, Any]:
        """Parameters for the gather action returned on call entry."""
        return {
            "greeting": self.greeting,
            "timeout": self.timeout,
            "max_digits": self.max_digits,
            "retries": self.retries,
            "options": self.options_payload(),
        }


def default_flow() -> FlowConfig:
    """Built-in flow used when a tenant has no active flow configured."""
    return FlowConfig(
        name=DEFAULT_FLOW_NAME,
        greeting=DEFAULT_GREETING,
        timeout=10,
        max_digits=4,
        retries=3,
        options={
            "1": FlowOption(action=RoutingAction.DEPT, params={"department": "Sales"}),
            "2": FlowOption(action=RoutingAction.DEPT, params={"department": "Support"}),
            "3": FlowOption(action=RoutingAction.DEPT, params={"department": "Billing"}),
        },
        default_option=FlowOption(action=RoutingAction.AI, params={"prompt": DEFAULT_AI_PROMPT}),
        fallback=FlowOption(action=RoutingAction.VOICEMAIL, params={"message": DEFAULT_VOICEMAIL_MESSAGE}),
    )

"""
Directory Models
Extensions, dial plans and departments read by the routing engine
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from enum import Enum
import json


class ExtensionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class DialPlanType(str, Enum):
    """How destinations are rung"""
    SIMULTANEOUS = "simultaneous"
    SEQUENTIAL = "sequential"


class DialDestination(BaseModel):
    """A SIP address or PSTN number to ring"""
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="Destination type (sip, pstn)")
    address: Optional[str] = None
    number: Optional[str] = None


class DialPlan(BaseModel):
    """Ordered destinations for an extension"""
    type: DialPlanType
    destinations: List[DialDestination] = Field(..., min_length=1)
    timeout: int = Field(default=30, ge=0, description="Ring timeout in seconds")
    fallback: Optional[str] = Field(None, description="What to do when nobody answers")

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "destinations": [d.model_dump(exclude_none=True) for d in self.destinations],
            "timeout": self.timeout,
            "fallback": self.fallback,
        }


def _decode(value: Any) -> Any:
    """JSON columns may come back as strings."""
    if isinstance(value, str):
        return json.loads(value)
    return value


class Extension(BaseModel):
    """Directory extension"""
    id: Optional[str] = None
    tenant_id: str
    extension_number: str
    name: str
    status: ExtensionStatus = ExtensionStatus.ACTIVE
    department_id: Optional[str] = None
    department_name: Optional[str] = None
    dial_plan: DialPlan

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Extension":
        """
        Parse an extensions row.

        Raises:
            pydantic.ValidationError: If the row (or its dial plan) is malformed
        """
        department = row.get("departments") or {}
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            tenant_id=str(row["tenant_id"]),
            extension_number=str(row["extension_number"]),
            name=row.get("name") or "",
            status=row.get("status") or ExtensionStatus.ACTIVE,
            department_id=str(row["department_id"]) if row.get("department_id") else None,
            department_name=row.get("department_name") or department.get("name"),
            dial_plan=_decode(row.get("dial_plan")),
        )

    @property
    def is_active(self) -> bool:
        return self.status == ExtensionStatus.ACTIVE

    def routing_params(self) -> Dict[str, Any]:
        """Params for the extension routing action."""
        return {
            "extension": self.extension_number,
            "name": self.name,
            "dialPlan": self.dial_plan.to_dict(),
        }


class Department(BaseModel):
    """Directory department with its active extensions"""
    id: Optional[str] = None
    tenant_id: str
    name: str
    greeting: Optional[str] = Field(None, description="settings.greeting")
    extensions: List[Extension] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any], extensions: Optional[List[Extension]] = None) -> "Department":
        settings = _decode(row.get("settings")) or {}
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            tenant_id=str(row["tenant_id"]),
            name=row["name"],
            greeting=settings.get("greeting"),
            extensions=extensions or [],
        )

    @property
    def routing_greeting(self) -> str:
        return self.greeting or f"Connecting you to {self.name}"

    def routing_params(self) -> Dict[str, Any]:
        """Params for the dept routing action."""
        return {
            "department": self.name,
            "greeting": self.routing_greeting,
            "extensions": [ext.routing_params() for ext in self.extensions],
        }

"""
IVR Webhook Endpoints
Entry, event and log webhooks called by the telephony provider

Flow:
1. Provider receives an inbound call -> POST /ivr/entry -> gather action
2. Caller input / dial results      -> POST /ivr/event -> next action
3. Call ends                        -> POST /ivr/log   -> outcome and metrics
"""
import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator

from callflow.api.v1.dependencies import (
    get_analytics,
    get_classifier,
    get_dispatcher,
    get_sessions,
)
from callflow.domain.interfaces.session_repository import SessionRepository
from callflow.domain.services.call_analytics import CallAnalyticsService
from callflow.domain.services.ivr_dispatcher import IvrDispatcher
from callflow.domain.services.outcome_classifier import OutcomeClassifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ivr", tags=["ivr"])

# Numbers and numeric strings would otherwise parse as Unix timestamps
ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")


# ========== Request Models ==========

class IvrEntryRequest(BaseModel):
    """Inbound call entry webhook"""
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(..., alias="tenantId", min_length=1)
    did: str = Field(..., min_length=1, description="Dialed number")
    from_number: str = Field(..., alias="from", min_length=1)
    to_number: str = Field(..., alias="to", min_length=1)
    ts: Optional[datetime] = Field(None, description="ISO-8601 time the call was received")
    call_sid: Optional[str] = Field(None, alias="callSid", description="Provider call id")

    @field_validator("ts", mode="before")
    @classmethod
    def require_iso_timestamp(cls, value: Any) -> Any:
        if value is None:
            return value
        if not isinstance(value, str) or not ISO_DATE_PREFIX.match(value):
            raise ValueError("ts must be an ISO-8601 timestamp")
        return value


class IvrEventRequest(BaseModel):
    """IVR event webhook (digits, dial results, handoffs)"""
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(..., alias="tenantId", min_length=1)
    call_id: str = Field(..., alias="callId", min_length=1)
    event: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)


class IvrLogRequest(BaseModel):
    """Terminal call log webhook"""
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(..., alias="tenantId", min_length=1)
    call_id: str = Field(..., alias="callId", min_length=1)
    cdr: Dict[str, Any] = Field(default_factory=dict)


# ========== Webhooks ==========

@router.post("/entry")
async def ivr_entry(
    request: IvrEntryRequest,
    dispatcher: IvrDispatcher = Depends(get_dispatcher)
):
    """
    Handle an inbound call.

    Creates the call session and returns the gather action for the
    tenant's active flow (or the built-in default flow).
    """
    call_id, decision = await dispatcher.handle_entry(
        tenant_id=request.tenant_id,
        did=request.did,
        from_number=request.from_number,
        to_number=request.to_number,
        ts=request.ts,
        external_call_ref=request.call_sid
    )

    return {"success": True, "callId": call_id, **decision.to_response()}


@router.post("/event")
async def ivr_event(
    request: IvrEventRequest,
    dispatcher: IvrDispatcher = Depends(get_dispatcher)
):
    """
    Handle an IVR event and return the next routing action.

    Events for unknown calls are still routed; they are just not recorded.
    """
    decision = await dispatcher.handle_event(
        tenant_id=request.tenant_id,
        call_id=request.call_id,
        event=request.event,
        data=request.data
    )

    return {"success": True, "callId": request.call_id, **decision.to_response()}


@router.post("/log")
async def ivr_log(
    request: IvrLogRequest,
    classifier: OutcomeClassifier = Depends(get_classifier)
):
    """
    Finalize a call: classify the outcome and persist metrics.

    Returns 404 if the call was never entered.
    """
    summary = await classifier.finalize_call(
        tenant_id=request.tenant_id,
        call_id=request.call_id,
        cdr=request.cdr
    )

    return {
        "success": True,
        "message": "Call logged successfully",
        "data": summary.to_response(),
    }


# ========== Readback ==========

@router.get("/calls/{call_id}")
async def get_call(
    call_id: str,
    tenant_id: str = Query(..., alias="tenantId", min_length=1),
    sessions: SessionRepository = Depends(get_sessions)
):
    """Get a call session with its full path."""
    session = await sessions.get(tenant_id, call_id)
    return {"success": True, "call": session.to_response()}


@router.get("/analytics")
async def get_call_analytics(
    tenant_id: str = Query(..., alias="tenantId", min_length=1),
    start_date: Optional[datetime] = Query(None, alias="startDate", description="ISO-8601 start"),
    end_date: Optional[datetime] = Query(None, alias="endDate", description="ISO-8601 end"),
    analytics: CallAnalyticsService = Depends(get_analytics)
):
    """
    Get call analytics for a tenant.

    Query params:
        - startDate: earliest call start (inclusive), unbounded if omitted
        - endDate: latest call start (inclusive), unbounded if omitted
    """
    summary = await analytics.summarize(tenant_id, start_date, end_date)

    return {
        "success": True,
        "tenantId": tenant_id,
        "analytics": summary.to_response(),
        "period": {
            "startDate": start_date.isoformat() if start_date else None,
            "endDate": end_date.isoformat() if end_date else None,
        },
    }

"""
Domain Exceptions
Errors raised by the session store and routing services
"""
from typing import Optional


class CallFlowError(Exception):
    """Base class for call-flow engine errors."""

    def __init__(self, message: str, tenant_id: Optional[str] = None, call_id: Optional[str] = None):
        self.message = message
        self.tenant_id = tenant_id
        self.call_id = call_id
        super().__init__(self.message)


class SessionNotFoundError(CallFlowError):
    """Raised when no session exists for (tenant_id, call_id)."""

    def __init__(self, tenant_id: str, call_id: str):
        super().__init__(
            f"Call session not found: tenant_id={tenant_id}, call_id={call_id}",
            tenant_id=tenant_id,
            call_id=call_id
        )


class SessionConflictError(CallFlowError):
    """Raised when creating a session whose (tenant_id, call_id) already exists."""

    def __init__(self, tenant_id: str, call_id: str):
        super().__init__(
            f"Call session already exists: tenant_id={tenant_id}, call_id={call_id}",
            tenant_id=tenant_id,
            call_id=call_id
        )


class SessionAlreadyFinalizedError(CallFlowError):
    """Raised when finalize is applied to a session that already has an outcome."""

    def __init__(self, tenant_id: str, call_id: str):
        super().__init__(
            f"Call session already finalized: tenant_id={tenant_id}, call_id={call_id}",
            tenant_id=tenant_id,
            call_id=call_id
        )


class ConcurrentUpdateError(CallFlowError):
    """Raised when optimistic updates keep losing to concurrent writers."""

    def __init__(self, tenant_id: str, call_id: str, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Concurrent update conflict after {attempts} attempts: "
            f"tenant_id={tenant_id}, call_id={call_id}",
            tenant_id=tenant_id,
            call_id=call_id
        )


class SessionStorageError(CallFlowError):
    """Raised when the session backend fails."""


class DirectoryStorageError(CallFlowError):
    """Raised when flows, extensions or departments cannot be read."""

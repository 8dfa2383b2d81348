"""
Flow Resolver
Picks the IVR flow that applies to a tenant's inbound calls
"""
import logging

from callflow.domain.interfaces.directory_provider import DirectoryProvider
from callflow.domain.models.ivr_flow import FlowConfig, default_flow

logger = logging.getLogger(__name__)


class FlowResolver:
    """
    Resolves the single active flow for a tenant.

    The newest flow marked active wins (ordering is done by the provider).
    Tenants without one get the built-in default flow; a missing flow is
    never an error.
    """

    def __init__(self, directory: DirectoryProvider):
        self._directory = directory

    async def resolve_active_flow(self, tenant_id: str) -> FlowConfig:
        """
        Get the flow to run for a tenant.

        Args:
            tenant_id: Tenant identifier

        Returns:
            The tenant's active FlowConfig, or the built-in default
        """
        flow = await self._directory.get_active_flow(tenant_id)

        if flow is None:
            logger.info(f"No active IVR flow for tenant_id={tenant_id}, using default flow")
            return default_flow()

        return flow

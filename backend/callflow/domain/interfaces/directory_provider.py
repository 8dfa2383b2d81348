"""
Directory Provider Interface
Read-only access to tenant flow, extension and department configuration
"""
from abc import ABC, abstractmethod
from typing import Optional

from callflow.domain.models.ivr_flow import FlowConfig
from callflow.domain.models.directory import Extension, Department


class DirectoryProvider(ABC):
    """
    Abstract source of routing configuration.

    Implementations parse stored rows into typed models. A row that fails
    validation is reported as missing (None) so the engine applies its
    documented fallback instead of failing the call.
    """

    @abstractmethod
    async def get_active_flow(self, tenant_id: str) -> Optional[FlowConfig]:
        """Newest active flow for the tenant, or None"""
        pass

    @abstractmethod
    async def find_extension(self, tenant_id: str, number: str) -> Optional[Extension]:
        """Active extension with this number, or None"""
        pass

    @abstractmethod
    async def find_department(self, tenant_id: str, name: str) -> Optional[Department]:
        """Department with this name and its active extensions, or None"""
        pass

    async def close(self) -> None:
        """Release resources"""
        pass

"""
In-Memory Directory Provider
Seedable directory for development and tests
"""
import logging
from typing import Dict, List, Optional, Tuple

from callflow.domain.interfaces.directory_provider import DirectoryProvider
from callflow.domain.models.directory import Department, Extension
from callflow.domain.models.ivr_flow import FlowConfig

logger = logging.getLogger(__name__)


class MemoryDirectoryProvider(DirectoryProvider):
    """Directory held in process memory, seeded through add_* methods."""

    def __init__(self):
        # Per tenant, in creation order; the newest active flow wins
        self._flows: Dict[str, List[Tuple[FlowConfig, bool]]] = {}
        self._extensions: Dict[Tuple[str, str], Extension] = {}
        self._departments: Dict[Tuple[str, str], Department] = {}

    # ========== Seeding ==========

    def add_flow(self, tenant_id: str, flow: FlowConfig, is_active: bool = True) -> None:
        self._flows.setdefault(tenant_id, []).append((flow, is_active))

    def add_extension(self, extension: Extension) -> None:
        self._extensions[(extension.tenant_id, extension.extension_number)] = extension

    def add_department(self, department: Department) -> None:
        self._departments[(department.tenant_id, department.name)] = department

    # ========== DirectoryProvider ==========

    async def get_active_flow(self, tenant_id: str) -> Optional[FlowConfig]:
        for flow, is_active in reversed(self._flows.get(tenant_id, [])):
            if is_active:
                return flow
        return None

    async def find_extension(self, tenant_id: str, number: str) -> Optional[Extension]:
        extension = self._extensions.get((tenant_id, number))
        if extension is None or not extension.is_active:
            return None
        return extension

    async def find_department(self, tenant_id: str, name: str) -> Optional[Department]:
        department = self._departments.get((tenant_id, name))
        if department is None:
            return None

        members = [
            ext for ext in self._extensions.values()
            if ext.tenant_id == tenant_id
            and ext.is_active
            and department.id is not None
            and ext.department_id == department.id
        ]
        if not members:
            return department

        return department.model_copy(update={"extensions": sorted(members, key=lambda e: e.extension_number)})

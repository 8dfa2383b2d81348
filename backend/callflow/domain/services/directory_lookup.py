"""
Directory Lookups
Tenant-scoped resolution of extensions and departments
"""
import logging
from typing import Optional

from callflow.domain.interfaces.directory_provider import DirectoryProvider
from callflow.domain.models.directory import Extension, Department

logger = logging.getLogger(__name__)


class DirectoryLookup:
    """
    Read-only directory lookups for the dispatcher.

    Only active extensions count as matches; an inactive extension with
    the requested number is reported as not found.
    """

    def __init__(self, directory: DirectoryProvider):
        self._directory = directory

    async def find_extension(self, tenant_id: str, number: Optional[str]) -> Optional[Extension]:
        if not number:
            return None

        extension = await self._directory.find_extension(tenant_id, number)
        if extension is None:
            return None

        if not extension.is_active:
            logger.info(
                f"Extension {number} is inactive for tenant_id={tenant_id}, treating as not found"
            )
            return None

        return extension

    async def find_department(self, tenant_id: str, name: Optional[str]) -> Optional[Department]:
        if not name:
            return None

        department = await self._directory.find_department(tenant_id, name)
        if department is None:
            return None

        # Only ring active members
        active = [ext for ext in department.extensions if ext.is_active]
        if len(active) != len(department.extensions):
            department = department.model_copy(update={"extensions": active})

        return department

"""
Supabase Directory Provider
Reads IVR flows, extensions and departments from Supabase
"""
import logging
from typing import Any, Callable, List, Optional

from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import Client

from callflow.domain.exceptions import DirectoryStorageError
from callflow.domain.interfaces.directory_provider import DirectoryProvider
from callflow.domain.models.directory import Department, Extension, ExtensionStatus, _decode
from callflow.domain.models.ivr_flow import FlowConfig

logger = logging.getLogger(__name__)


class SupabaseDirectoryProvider(DirectoryProvider):
    """
    Directory backed by the ivr_flows, extensions and departments tables.

    Rows that fail validation are logged and reported as missing.
    Query failures raise DirectoryStorageError.
    """

    def __init__(self, client: Client):
        self._client = client

    def _fetch(self, table: str, tenant_id: str, query: Callable[[Any], Any]) -> List[dict]:
        """Run a query against table and return its rows."""
        try:
            response = query(self._client.table(table)).execute()
        except APIError as e:
            logger.error(f"Failed to read {table}: tenant_id={tenant_id}: {e}", exc_info=True)
            raise DirectoryStorageError(str(e), tenant_id=tenant_id) from e
        return response.data or []

    async def get_active_flow(self, tenant_id: str) -> Optional[FlowConfig]:
        rows = self._fetch("ivr_flows", tenant_id, lambda table: table.select(
            "name, flow_config, created_at"
        ).eq(
            "tenant_id", tenant_id
        ).eq(
            "is_active", True
        ).order(
            "created_at", desc=True
        ).limit(1))

        if not rows:
            return None

        row = rows[0]
        try:
            return FlowConfig.from_config(_decode(row.get("flow_config")) or {}, name=row.get("name"))
        except (ValidationError, ValueError) as e:
            logger.warning(f"Invalid IVR flow config for tenant_id={tenant_id}, using default: {e}")
            return None

    async def find_extension(self, tenant_id: str, number: str) -> Optional[Extension]:
        rows = self._fetch("extensions", tenant_id, lambda table: table.select(
            "*, departments(name)"
        ).eq(
            "tenant_id", tenant_id
        ).eq(
            "extension_number", number
        ).eq(
            "status", ExtensionStatus.ACTIVE.value
        ).limit(1))

        if not rows:
            return None

        try:
            return Extension.from_row(rows[0])
        except (ValidationError, ValueError) as e:
            logger.warning(
                f"Invalid extension {number} for tenant_id={tenant_id}, treating as not found: {e}"
            )
            return None

    async def find_department(self, tenant_id: str, name: str) -> Optional[Department]:
        rows = self._fetch("departments", tenant_id, lambda table: table.select("*").eq(
            "tenant_id", tenant_id
        ).eq(
            "name", name
        ).limit(1))

        if not rows:
            return None

        row = rows[0]
        extensions = self._department_extensions(tenant_id, row.get("id"))

        try:
            return Department.from_row(row, extensions)
        except (ValidationError, ValueError) as e:
            logger.warning(
                f"Invalid department {name} for tenant_id={tenant_id}, treating as not found: {e}"
            )
            return None

    def _department_extensions(self, tenant_id: str, department_id: Optional[str]) -> List[Extension]:
        """Active extensions of a department; malformed rows are skipped."""
        if department_id is None:
            return []

        rows = self._fetch("extensions", tenant_id, lambda table: table.select("*").eq(
            "tenant_id", tenant_id
        ).eq(
            "department_id", department_id
        ).eq(
            "status", ExtensionStatus.ACTIVE.value
        ).order("extension_number"))

        extensions = []
        for row in rows:
            try:
                extensions.append(Extension.from_row(row))
            except (ValidationError, ValueError) as e:
                logger.warning(
                    f"Skipping invalid extension {row.get('extension_number')} "
                    f"for tenant_id={tenant_id}: {e}"
                )
        return extensions

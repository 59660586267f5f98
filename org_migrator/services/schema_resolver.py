"""Resolution of org-specific schema identifiers."""

import logging
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from ..connections.base import OrgConnection
from ..exceptions import SchemaResolutionError
from ..soql import quote_literal

logger = logging.getLogger(__name__)


class SchemaResolver:
    """
    Discovers identifiers that differ between orgs.

    Describe calls and record type queries are cached per resolver, so a
    resolver should live no longer than one run.
    """

    def __init__(self, external_id_candidates: Sequence[str]):
        """
        Initialize the resolver.

        Args:
            external_id_candidates: External id field names to try, in priority order
        """
        self.external_id_candidates = list(external_id_candidates)
        self._describe_cache: Dict[Tuple[int, str], Dict[str, Any]] = {}
        self._record_types: Dict[Tuple[int, str], List[Dict[str, Any]]] = {}

    async def describe(self, connection: OrgConnection, object_name: str) -> Dict[str, Any]:
        key = (id(connection), object_name)
        if key not in self._describe_cache:
            self._describe_cache[key] = await connection.describe(object_name)
        return self._describe_cache[key]

    async def field_names(self, connection: OrgConnection, object_name: str) -> Set[str]:
        describe = await self.describe(connection, object_name)
        return {f["name"] for f in describe.get("fields", [])}

    async def resolve_external_id_field(self, connection: OrgConnection, object_api_name: str) -> str:
        """
        Find which external id field variant is installed on an object.

        Args:
            connection: Target org connection
            object_api_name: Object to inspect

        Returns:
            The first candidate field present on the object

        Raises:
            SchemaResolutionError: If no candidate exists
        """
        names = await self.field_names(connection, object_api_name)
        for candidate in self.external_id_candidates:
            if candidate in names:
                logger.info(f"Using external id field {candidate} on {object_api_name}")
                return candidate

        raise SchemaResolutionError(
            f"No external id field ({', '.join(self.external_id_candidates)}) found on {object_api_name}",
            object_name=object_api_name,
        )

    async def resolve_record_type_id(
        self,
        connection: OrgConnection,
        object_api_name: str,
        developer_name: str,
    ) -> str:
        """
        Resolve a record type developer name to its id in the given org.

        Matches DeveloperName first, then the display Name.

        Raises:
            SchemaResolutionError: If no record type matches
        """
        key = (id(connection), object_api_name)
        if key not in self._record_types:
            result = await connection.query_all(
                "SELECT Id, Name, DeveloperName FROM RecordType "
                f"WHERE SobjectType = {quote_literal(object_api_name)}"
            )
            self._record_types[key] = result.records

        record_types = self._record_types[key]
        for attr in ("DeveloperName", "Name"):
            for rt in record_types:
                if rt.get(attr) == developer_name:
                    return rt["Id"]

        raise SchemaResolutionError(
            f"Record type '{developer_name}' does not exist on {object_api_name} in the target org",
            object_name=object_api_name,
            field_name="RecordTypeId",
        )

    async def get_picklist_values(
        self,
        connection: OrgConnection,
        object_api_name: str,
        field_name: str,
    ) -> Optional[Set[str]]:
        """
        Active picklist values for a field.

        Returns:
            Set of values, or None if the field does not exist on the object
        """
        describe = await self.describe(connection, object_api_name)
        for f in describe.get("fields", []):
            if f.get("name") == field_name:
                return {
                    v["value"] for v in f.get("picklistValues") or []
                    if v.get("active", True)
                }
        return None

"""Base interface for org connections."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional


@dataclass
class QueryResult:
    """Fully materialized result of a query."""
    records: List[Dict[str, Any]] = field(default_factory=list)
    total_size: int = 0


class OrgConnection(ABC):
    """
    Asynchronous access to one org.

    Implementations never block the event loop; every method is an
    await point and applies its own per-call timeout.
    """

    def __init__(self, org_id: Optional[str] = None, instance_url: str = ""):
        self.org_id = org_id
        self.instance_url = instance_url.rstrip("/")

    @abstractmethod
    def query_pages(self, soql: str, page_size: int = 200) -> AsyncIterator[List[Dict[str, Any]]]:
        """
        Run a query and yield pages of raw rows.

        Args:
            soql: Query text
            page_size: Requested rows per page

        Yields:
            Lists of row dictionaries
        """

    async def query_all(self, soql: str, page_size: int = 2000) -> QueryResult:
        """Run a query and collect every page."""
        result = QueryResult()
        async for page in self.query_pages(soql, page_size):
            result.records.extend(page)
        result.total_size = len(result.records)
        return result

    async def count(self, soql: str) -> int:
        """Row count for an aggregate ``SELECT COUNT() ...`` query."""
        result = await self.query_all(soql)
        return result.total_size

    @abstractmethod
    async def describe(self, object_name: str) -> Dict[str, Any]:
        """
        Describe an object's schema.

        Returns:
            Describe payload with a ``fields`` list; each field has ``name``
            and, for picklists, ``picklistValues``
        """

    @abstractmethod
    async def bulk_upsert(
        self,
        object_name: str,
        external_id_field: str,
        records: List[Dict[str, Any]],
        serial: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Upsert one batch of records keyed by an external id field.

        Returns:
            One result per input record, in order:
            ``{"success", "created", "id", "errors": [{"statusCode", "message", "fields"}]}``
        """

    @abstractmethod
    async def bulk_delete(self, object_name: str, record_ids: List[str]) -> List[Dict[str, Any]]:
        """Delete records by id; results use the same shape as bulk_upsert."""

"""Extractor running a step's query against the source org."""

import logging
from typing import AsyncIterator, List, Sequence

from .base import BaseExtractor, ExtractionResult
from ..connections.base import OrgConnection
from ..models.record import SourceRecord
from ..models.template import ExtractConfig
from ..soql import add_in_filter

logger = logging.getLogger(__name__)


class SoqlExtractor(BaseExtractor):
    """
    Pages a resolved query from the source org.

    When the step declares a ``selection_field`` the query is constrained
    with ``<selection_field> IN (...)``, and an empty selection matches
    nothing. Templates that place ``{selectedRecordIds}`` in the query text
    leave the field unset.
    """

    def __init__(
        self,
        connection: OrgConnection,
        config: ExtractConfig,
        selected_record_ids: Sequence[str] = (),
    ):
        super().__init__(config.object_api_name, config.batch_size)
        self.connection = connection
        self.config = config
        self.selected_record_ids = list(selected_record_ids)

    def build_query(self) -> str:
        query = self.config.soql_query
        if self.config.selection_field:
            query = add_in_filter(query, self.config.selection_field, self.selected_record_ids)
        return query

    async def stream(self) -> AsyncIterator[List[SourceRecord]]:
        query = self.build_query()
        async for page in self.connection.query_pages(query, self.batch_size):
            yield [SourceRecord.from_api(self.object_name, row) for row in page]

    async def extract(self) -> ExtractionResult:
        result = await super().extract()
        result.query = self.build_query()
        logger.info(f"Extracted {result.total_extracted} {self.object_name} records in {result.pages} page(s)")
        return result

"""Base extractor interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional
from datetime import datetime
import logging

from ..models.record import SourceRecord

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Result of an extraction operation."""
    object_name: str
    query: str = ""
    records: List[SourceRecord] = field(default_factory=list)
    pages: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total_extracted(self) -> int:
        return len(self.records)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "object_name": self.object_name,
            "query": self.query,
            "total_extracted": self.total_extracted,
            "pages": self.pages,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


class BaseExtractor(ABC):
    """
    Base class for source extractors.

    Extractors pull rows from a source org and convert them to
    SourceRecord objects, either page by page or fully materialized.
    """

    def __init__(self, object_name: str, batch_size: int = 200):
        """
        Initialize the extractor.

        Args:
            object_name: Object being extracted
            batch_size: Records per page
        """
        self.object_name = object_name
        self.batch_size = batch_size

    @abstractmethod
    def stream(self) -> AsyncIterator[List[SourceRecord]]:
        """
        Stream records in pages.

        Yields:
            Pages of SourceRecord objects
        """

    async def extract(self) -> ExtractionResult:
        """
        Extract every record; returns only once all pages have arrived.

        Returns:
            ExtractionResult containing all extracted records
        """
        result = ExtractionResult(object_name=self.object_name)
        result.started_at = datetime.utcnow()

        async for page in self.stream():
            result.records.extend(page)
            result.pages += 1

        result.completed_at = datetime.utcnow()
        return result

"""Base loader interface for target orgs."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from ..connections.base import OrgConnection
from ..models.execution import RecordError
from ..models.record import RecordResult, TransformedRecord

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """Result of a load operation."""
    target_object: str
    results: List[RecordResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total_attempted(self) -> int:
        return len(self.results)

    @property
    def total_succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def total_failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def created_ids(self) -> List[str]:
        """Ids of records this load created, for rollback."""
        return [r.target_id for r in self.results if r.success and r.created and r.target_id]

    @property
    def id_mappings(self) -> Dict[str, str]:
        """External id -> target id for every successfully upserted record."""
        return {
            r.external_id: r.target_id
            for r in self.results
            if r.success and r.external_id and r.target_id
        }

    @property
    def errors(self) -> List[RecordError]:
        return [
            RecordError(
                record_id=r.source_id,
                message=r.error_message or "Unknown error",
                phase="load",
                code=r.error_code,
                external_id=r.external_id,
            )
            for r in self.results if not r.success
        ]

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_object": self.target_object,
            "total_attempted": self.total_attempted,
            "total_succeeded": self.total_succeeded,
            "total_failed": self.total_failed,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "created_ids": self.created_ids,
            "errors": [e.to_dict() for e in self.errors],
        }


class BaseLoader(ABC):
    """
    Base class for data loaders.

    Loaders write transformed records into the target org in batches and
    report an outcome for every record.
    """

    def __init__(
        self,
        connection: OrgConnection,
        target_object: str,
        batch_size: int = 200,
        max_parallel_batches: int = 1,
    ):
        """
        Initialize the loader.

        Args:
            connection: Target org connection
            target_object: Object being loaded
            batch_size: Number of records per batch
            max_parallel_batches: Batches in flight at once (1 loads serially)
        """
        self.connection = connection
        self.target_object = target_object
        self.batch_size = max(1, batch_size)
        self.max_parallel_batches = max(1, max_parallel_batches)

    @abstractmethod
    async def load_batch(self, records: List[TransformedRecord]) -> List[RecordResult]:
        """
        Load one batch of records.

        Args:
            records: Transformed records

        Returns:
            One RecordResult per input record, in order
        """

    async def load_all(self, records: List[TransformedRecord]) -> LoadResult:
        """
        Load every record, waiting for all batches to finish.

        Args:
            records: Transformed records

        Returns:
            LoadResult with per-record outcomes in input order
        """
        result = LoadResult(target_object=self.target_object)
        result.started_at = datetime.utcnow()

        batches = [records[i:i + self.batch_size] for i in range(0, len(records), self.batch_size)]
        logger.info(f"Loading {len(records)} {self.target_object} records in {len(batches)} batch(es)...")

        if self.max_parallel_batches > 1 and len(batches) > 1:
            semaphore = asyncio.Semaphore(self.max_parallel_batches)

            async def run(batch: List[TransformedRecord]) -> List[RecordResult]:
                async with semaphore:
                    return await self.load_batch(batch)

            tasks = [asyncio.ensure_future(run(batch)) for batch in batches]
            try:
                batch_results = await asyncio.gather(*tasks)
            except BaseException:
                # Nothing may keep writing once the caller sees the error
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
        else:
            batch_results = []
            for batch in batches:
                batch_results.append(await self.load_batch(batch))

        for batch_result in batch_results:
            result.results.extend(batch_result)

        result.completed_at = datetime.utcnow()
        logger.info(
            f"Loaded {self.target_object}: {result.total_succeeded}/{result.total_attempted} succeeded"
        )
        return result

    @abstractmethod
    async def delete_records(self, record_ids: List[str]) -> int:
        """
        Delete records from the target org.

        Returns:
            Number of records deleted
        """

    async def rollback(self, created_ids: List[str]) -> int:
        """
        Delete records created by an earlier load.

        Returns:
            Number of records deleted
        """
        if not created_ids:
            return 0
        deleted = await self.delete_records(created_ids)
        logger.info(f"Rolled back {deleted}/{len(created_ids)} {self.target_object} records")
        return deleted

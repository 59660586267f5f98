"""Bulk upsert loader with per-record retry."""

import asyncio
import logging
from typing import Any, Dict, List, Tuple

from .base import BaseLoader
from ..connections.base import OrgConnection
from ..exceptions import ApiError, AuthError, is_auth_error
from ..models.record import RecordResult, TransformedRecord
from ..models.template import ConcurrencyMode, LoadConfig

logger = logging.getLogger(__name__)


def _first_error(outcome: Dict[str, Any]) -> Tuple[str, str]:
    errors = outcome.get("errors") or []
    if errors:
        error = errors[0]
        return error.get("statusCode") or "UNKNOWN_ERROR", error.get("message") or "Unknown error"
    return "UNKNOWN_ERROR", "Record was rejected without an error message"


class BulkUpsertLoader(BaseLoader):
    """
    Upserts records keyed by an external id field.

    Failed records whose error code is listed in the step's retryable
    errors are resubmitted up to ``max_retries`` times, waiting a fixed
    ``retry_wait_seconds`` between attempts. Other failures are final after
    one attempt. A whole-batch API error is applied to every record of the
    batch and retried under the same policy.
    """

    def __init__(self, connection: OrgConnection, config: LoadConfig, max_parallel_batches: int = 5):
        """
        Initialize the loader.

        Args:
            connection: Target org connection
            config: Resolved load config of the step
            max_parallel_batches: Batches in flight at once in parallel mode
        """
        parallel = config.concurrency_mode == ConcurrencyMode.PARALLEL
        super().__init__(
            connection,
            config.target_object,
            batch_size=config.batch_size,
            max_parallel_batches=max_parallel_batches if parallel else 1,
        )
        self.config = config
        self.retry = config.retry_config

    @property
    def serial(self) -> bool:
        return self.config.concurrency_mode == ConcurrencyMode.SERIAL

    async def _submit(self, records: List[TransformedRecord]) -> List[Dict[str, Any]]:
        """Submit one attempt; batch-level API errors become per-record outcomes."""
        try:
            outcomes = await self.connection.bulk_upsert(
                self.target_object,
                self.config.external_id_field,
                [r.data for r in records],
                serial=self.serial,
            )
        except AuthError:
            raise
        except ApiError as e:
            logger.warning(f"Batch upsert to {self.target_object} failed: {e}")
            failure = {"success": False, "errors": [{"statusCode": e.code or "API_ERROR", "message": e.message}]}
            return [failure] * len(records)

        outcomes = list(outcomes)
        missing = len(records) - len(outcomes)
        if missing > 0:
            outcomes.extend(
                [{"success": False, "errors": [{"statusCode": "NO_RESULT", "message": "No result returned"}]}]
                * missing
            )
        return outcomes

    async def load_batch(self, records: List[TransformedRecord]) -> List[RecordResult]:
        results = [
            RecordResult(source_id=r.source_id, external_id=r.external_id)
            for r in records
        ]
        pending = list(range(len(records)))
        attempt = 0

        while pending:
            attempt += 1
            outcomes = await self._submit([records[i] for i in pending])
            retry = []

            for index, outcome in zip(pending, outcomes):
                result = results[index]
                result.attempts = attempt

                if outcome.get("success"):
                    result.success = True
                    result.created = bool(outcome.get("created"))
                    result.target_id = outcome.get("id")
                    result.error_code = None
                    result.error_message = None
                    continue

                code, message = _first_error(outcome)
                if is_auth_error(code) or is_auth_error(message):
                    raise AuthError(message, code=code)

                result.error_code = code
                result.error_message = message
                if code in self.retry.retryable_errors and attempt <= self.retry.max_retries:
                    retry.append(index)
                else:
                    logger.debug(f"Record {result.source_id} failed after {attempt} attempt(s): {code}")

            if retry:
                logger.warning(
                    f"Retrying {len(retry)} {self.target_object} record(s) "
                    f"(attempt {attempt + 1}/{self.retry.max_retries + 1}) in {self.retry.retry_wait_seconds}s"
                )
                await asyncio.sleep(self.retry.retry_wait_seconds)
            pending = retry

        return results

    async def delete_records(self, record_ids: List[str]) -> int:
        deleted = 0
        for i in range(0, len(record_ids), self.batch_size):
            chunk = record_ids[i:i + self.batch_size]
            try:
                outcomes = await self.connection.bulk_delete(self.target_object, chunk)
            except AuthError:
                raise
            except ApiError as e:
                logger.error(f"Failed to delete {len(chunk)} {self.target_object} records: {e}")
                continue
            deleted += sum(1 for outcome in outcomes if outcome.get("success"))
        return deleted

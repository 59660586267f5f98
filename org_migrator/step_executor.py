"""Executes one step: extract, transform, load."""

import logging
from datetime import datetime
from typing import Optional

from .context import ExecutionContext
from .exceptions import ApiError, AuthError, LookupCacheConflictError, SchemaResolutionError
from .extractors.soql_extractor import SoqlExtractor
from .hooks import HookRunner, Stage
from .loaders.bulk_upsert_loader import BulkUpsertLoader
from .models.execution import StepResult, StepStatus
from .models.template import ETLStep
from .services.transformer import RecordTransformer
from .services.validator import ValidationEngine

logger = logging.getLogger(__name__)


class StepExecutor:
    """
    Runs the extract, transform and load phases of a step in order.

    Each phase starts only once the previous phase's output is complete.
    Per-record failures are collected on the StepResult; only an AuthError
    escapes, so the orchestrator can stop the run and ask for new credentials.
    """

    def __init__(
        self,
        validation_engine: ValidationEngine,
        transformer: Optional[RecordTransformer] = None,
        hooks: Optional[HookRunner] = None,
        max_parallel_batches: int = 5,
    ):
        """
        Initialize the step executor.

        Args:
            validation_engine: Used to seed the lookup cache from pre-validation queries
            transformer: Record transformer
            hooks: Lifecycle hooks to fire after extract and before load
            max_parallel_batches: Load batches in flight at once in parallel mode
        """
        self.validation_engine = validation_engine
        self.transformer = transformer or RecordTransformer()
        self.hooks = hooks or HookRunner()
        self.max_parallel_batches = max_parallel_batches

    async def execute(self, step: ETLStep, context: ExecutionContext, result: Optional[StepResult] = None) -> StepResult:
        """
        Execute a resolved step.

        Args:
            step: Step from the resolved plan
            context: Run context
            result: StepResult to fill in; a new one is created when omitted

        Returns:
            The StepResult, COMPLETED or FAILED

        Raises:
            AuthError: If either org rejects its credentials
        """
        result = result or StepResult(step_name=step.step_name)
        result.target_object = step.load_config.target_object
        result.status = StepStatus.RUNNING
        result.started_at = datetime.utcnow()

        try:
            await self._run_phases(step, context, result)
        except AuthError as e:
            result.status = StepStatus.FAILED
            result.error_message = f"Authentication failed: {e}"
            logger.error(f"Step {step.step_name} stopped: {result.error_message}")
            raise
        except (ApiError, SchemaResolutionError, LookupCacheConflictError) as e:
            result.status = StepStatus.FAILED
            result.error_message = str(e)
            logger.error(f"Step {step.step_name} failed: {e}")
        finally:
            result.completed_at = datetime.utcnow()

        return result

    async def _run_phases(self, step: ETLStep, context: ExecutionContext, result: StepResult) -> None:
        load_config = step.load_config

        notes = await self.validation_engine.run_pre_validation_queries(step, context.target, context.lookup_cache)
        result.annotations.extend(issue.message for issue in notes)

        logger.info("=== EXTRACT ===")
        extractor = SoqlExtractor(context.source, step.extract_config, context.selected_record_ids)
        extraction = await extractor.extract()
        records = extraction.records
        result.total_records = len(records)
        result.annotations.extend(
            await self.hooks.fire(Stage.POST_EXTRACT, context, step, tuple(records))
        )

        logger.info("=== TRANSFORM ===")
        local_lookups = await self.transformer.prefetch_lookups(step, records, context.lookup_cache, context.target)
        transformed, transform_errors = self.transformer.transform(
            step, records, context.lookup_cache, local_lookups
        )
        result.errors.extend(transform_errors)
        result.annotations.extend(
            await self.hooks.fire(Stage.PRE_LOAD, context, step, tuple(transformed))
        )

        logger.info("=== LOAD ===")
        loader = BulkUpsertLoader(context.target, load_config, self.max_parallel_batches)
        load = await loader.load_all(transformed)

        result.errors.extend(load.errors)
        result.successful_records = load.total_succeeded
        result.failed_records = len(transform_errors) + load.total_failed
        result.created_ids = load.created_ids
        result.created_records = len(result.created_ids)
        result.id_mappings = load.id_mappings

        # All batches are done; later steps can now resolve these records
        for external_id, target_id in result.id_mappings.items():
            try:
                context.lookup_cache.put(
                    load_config.target_object, external_id, target_id, load_config.external_id_field
                )
            except LookupCacheConflictError as e:
                logger.error(str(e))
                result.annotations.append(str(e))

        if result.failed_records and not load_config.allow_partial_success:
            result.status = StepStatus.FAILED
            result.error_message = (
                f"{result.failed_records} of {result.total_records} record(s) failed "
                "and partial success is not allowed"
            )
        else:
            result.status = StepStatus.COMPLETED

        logger.info(
            f"{step.step_name}: {result.successful_records}/{result.total_records} succeeded, "
            f"{result.failed_records} failed ({result.status.value})"
        )

    async def rollback(self, step: ETLStep, context: ExecutionContext, result: StepResult) -> int:
        """
        Delete the records a step created in the target org.

        Records the step only updated are left alone.

        Returns:
            Number of records deleted

        Raises:
            AuthError: If the target org rejects its credentials
        """
        if not result.created_ids:
            return 0
        loader = BulkUpsertLoader(context.target, step.load_config, self.max_parallel_batches)
        result.rolled_back = await loader.rollback(result.created_ids)
        return result.rolled_back

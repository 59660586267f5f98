"""Migration orchestrator - drives the steps of a resolved plan."""

import inspect
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, Optional, Set

from .context import ExecutionContext
from .exceptions import AuthError, ConcurrencyError
from .hooks import HookRunner, Stage
from .models.execution import RunResult, RunStatus, StepResult, StepStatus
from .run_store import InMemoryRunStore, RunStore
from .services.dependency_graph import check_execution_order, transitive_dependents
from .step_executor import StepExecutor

logger = logging.getLogger(__name__)

StepCallback = Callable[[StepResult], Any]


class RunLock:
    """
    Single-slot lock allowing one active run.

    Acquisition never waits: a second run is rejected immediately.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.active_run_id: Optional[str] = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    def acquire(self, run_id: str) -> None:
        """
        Take the lock for a run.

        Raises:
            ConcurrencyError: If another run holds the lock
        """
        if not self._lock.acquire(blocking=False):
            raise ConcurrencyError(f"Migration run {self.active_run_id} is already in progress")
        self.active_run_id = run_id

    def release(self) -> None:
        self.active_run_id = None
        self._lock.release()

    @contextmanager
    def hold(self, run_id: str) -> Iterator[None]:
        self.acquire(run_id)
        try:
            yield
        finally:
            self.release()


# Shared by every orchestrator in the process unless one is injected
GLOBAL_RUN_LOCK = RunLock()


class MigrationOrchestrator:
    """
    Orchestrates a migration run.

    Handles:
    - Execution order validation
    - The single active run constraint
    - Sequential step execution in execution order
    - Stopping at the first failed step and skipping the rest
    - Optional rollback of everything the run created
    - Run status derivation, persistence and progress callbacks
    """

    def __init__(
        self,
        executor: StepExecutor,
        run_lock: Optional[RunLock] = None,
        run_store: Optional[RunStore] = None,
        hooks: Optional[HookRunner] = None,
        rollback_on_failure: bool = False,
    ):
        """
        Initialize the orchestrator.

        Args:
            executor: Step executor
            run_lock: Run lock; defaults to the process-wide lock
            run_store: Where results are persisted after every step
            hooks: Hooks fired at run and step boundaries
            rollback_on_failure: Delete the records created by every step of
                the run once a step fails
        """
        self.executor = executor
        self.run_lock = run_lock or GLOBAL_RUN_LOCK
        self.run_store = run_store or InMemoryRunStore()
        self.hooks = hooks or HookRunner()
        self.rollback_on_failure = rollback_on_failure

    async def run(self, context: ExecutionContext, on_step: Optional[StepCallback] = None) -> RunResult:
        """
        Run every step of the context's plan.

        Args:
            context: Execution context holding the resolved plan
            on_step: Called with each StepResult as it reaches a terminal state

        Returns:
            RunResult with per-step results

        Raises:
            ConfigurationError: If the execution order is not a valid topological order
            ConcurrencyError: If another run is active
        """
        template = context.template
        check_execution_order(template)

        run = RunResult(
            template_id=template.id,
            run_id=context.run_id,
            source_org_id=context.source.org_id,
            target_org_id=context.target.org_id,
            selected_record_ids=list(context.selected_record_ids),
            step_results=[StepResult(step_name=s.step_name) for s in template.ordered_steps()],
        )
        run.status = RunStatus.READY

        self.run_lock.acquire(run.run_id)
        try:
            run.status = RunStatus.RUNNING
            run.started_at = datetime.utcnow()
            self.run_store.save(run)
            logger.info(f"=== RUN {run.run_id}: {template.id} ({len(run.step_results)} steps) ===")

            run.annotations.extend(await self.hooks.fire(Stage.PRE_MIGRATION, context))
            await self._run_steps(context, run, on_step)

            run.status = run.derive_status()
            run.annotations.extend(await self.hooks.fire(Stage.POST_MIGRATION, context, output=run))
            logger.info(f"=== RUN {run.status.value.upper()} ===")

        except Exception as e:
            logger.error(f"Migration run failed: {e}")
            run.status = RunStatus.FAILED
            run.errors.append(str(e))

        finally:
            run.completed_at = datetime.utcnow()
            try:
                self.run_store.save(run)
            finally:
                self.run_lock.release()

        return run

    async def _run_steps(self, context: ExecutionContext, run: RunResult, on_step: Optional[StepCallback]) -> None:
        template = context.template
        failed_step: Optional[str] = None
        blocked: Set[str] = set()
        halted = False
        total = len(run.step_results)

        for index, step in enumerate(template.ordered_steps(), start=1):
            result = run.step_results[index - 1]

            if halted:
                self._skip(result, "Skipped after an authentication failure")
            elif step.step_name in blocked:
                self._skip(result, "Skipped because a step it depends on failed")
            elif failed_step:
                self._skip(result, f"Skipped because step {failed_step} failed")
            elif step.step_name in context.plan.unresolved_steps:
                result.status = StepStatus.FAILED
                result.error_message = context.plan.unresolved_steps[step.step_name]
                result.started_at = result.completed_at = datetime.utcnow()
                logger.error(f"Step {step.step_name} cannot run: {result.error_message}")
            else:
                logger.info(f"=== STEP {index}/{total}: {step.step_name} ===")
                try:
                    await self.executor.execute(step, context, result)
                except AuthError as e:
                    run.errors.append(f"Authentication failed: {e}")
                    halted = True
                except Exception as e:
                    logger.error(f"Step {step.step_name} failed unexpectedly: {e}")
                    result.status = StepStatus.FAILED
                    result.error_message = str(e)
                    result.completed_at = datetime.utcnow()

            if result.status == StepStatus.FAILED:
                failed_step = step.step_name
                blocked = transitive_dependents(template, step.step_name)
                if self.rollback_on_failure:
                    await self._rollback(context, run, index)

            if result.status != StepStatus.SKIPPED:
                result.annotations.extend(await self.hooks.fire(Stage.POST_STEP, context, step, result))

            self.run_store.save(run)
            await self._notify(on_step, result)

    async def _rollback(self, context: ExecutionContext, run: RunResult, executed: int) -> None:
        """Delete what the first `executed` steps created, latest step first."""
        steps = context.template.ordered_steps()[:executed]
        for step, result in reversed(list(zip(steps, run.step_results[:executed]))):
            if not result.created_ids:
                continue
            try:
                deleted = await self.executor.rollback(step, context, result)
            except AuthError as e:
                logger.error(f"Rollback of {step.step_name} stopped: {e}")
                run.errors.append(f"Rollback failed: {e}")
                return
            logger.info(f"Rolled back {deleted} record(s) created by {step.step_name}")

    def _skip(self, result: StepResult, reason: str) -> None:
        result.status = StepStatus.SKIPPED
        result.error_message = reason
        logger.info(f"Step {result.step_name} skipped: {reason}")

    async def _notify(self, on_step: Optional[StepCallback], result: StepResult) -> None:
        if on_step is None:
            return
        outcome = on_step(result)
        if inspect.isawaitable(outcome):
            await outcome

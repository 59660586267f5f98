"""Engine facade used by the CLI and the HTTP API."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import EngineConfig
from .connections.base import OrgConnection
from .context import ExecutionContext
from .exceptions import AuthError, ConcurrencyError, SchemaResolutionError
from .hooks import HookRunner, MigrationHook
from .models.execution import RunResult, RunStatus, StepResult, StepStatus
from .models.template import MigrationTemplate
from .models.validation import Severity, ValidationIssue, ValidationResult
from .orchestrator import GLOBAL_RUN_LOCK, MigrationOrchestrator, RunLock, StepCallback
from .run_store import InMemoryRunStore, RunStore
from .services.dependency_graph import check_execution_order
from .services.placeholder_resolver import PlaceholderResolver, ResolvedPlan, check_placeholders
from .services.schema_resolver import SchemaResolver
from .services.template_store import TemplateStore
from .services.validation_rules import check_cache_keys
from .services.validator import ValidationEngine
from .step_executor import StepExecutor

logger = logging.getLogger(__name__)

# Returns the connection for an org id
ConnectionProvider = Callable[[str], OrgConnection]


@dataclass
class MigrationRequest:
    """Identifies the orgs, template and records of a validation or run."""
    template_id: str
    source_org_id: str
    target_org_id: str
    selected_record_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationRequest":
        return cls(
            template_id=data["template_id"],
            source_org_id=data["source_org_id"],
            target_org_id=data["target_org_id"],
            selected_record_ids=list(data.get("selected_record_ids") or []),
        )


class MigrationEngine:
    """
    Entry point for validating and running migrations.

    Each call builds its own resolver, cache and context, so nothing is
    shared between runs except the run lock and the run store.
    """

    def __init__(
        self,
        template_store: TemplateStore,
        connection_provider: ConnectionProvider,
        config: Optional[EngineConfig] = None,
        run_lock: Optional[RunLock] = None,
        run_store: Optional[RunStore] = None,
        hooks: Iterable[MigrationHook] = (),
    ):
        """
        Initialize the engine.

        Args:
            template_store: Registered templates
            connection_provider: Maps an org id to its connection
            config: Engine settings
            run_lock: Run lock; defaults to the process-wide lock
            run_store: Run persistence; in memory by default
            hooks: Lifecycle hooks
        """
        self.templates = template_store
        self.connection_provider = connection_provider
        self.config = config or EngineConfig()
        self.run_store = run_store or InMemoryRunStore()
        self.hooks = HookRunner(hooks)
        self.run_lock = run_lock or GLOBAL_RUN_LOCK

    def _schema_resolver(self) -> SchemaResolver:
        return SchemaResolver(self.config.external_id_candidates)

    def _validation_engine(self, schema_resolver: SchemaResolver) -> ValidationEngine:
        return ValidationEngine(schema_resolver, self.config.large_batch_threshold)

    def _load_template(self, template_id: str) -> MigrationTemplate:
        """Fetch a template and run the checks that need no org access."""
        template = self.templates.get(template_id)
        check_execution_order(template)
        check_placeholders(template)
        check_cache_keys(template)
        return template

    async def _resolve(
        self,
        request: MigrationRequest,
        source: OrgConnection,
        target: OrgConnection,
        schema_resolver: SchemaResolver,
    ) -> ResolvedPlan:
        template = self._load_template(request.template_id)
        return await PlaceholderResolver(schema_resolver).resolve(
            template, target, request.selected_record_ids, source
        )

    async def validate(self, request: MigrationRequest) -> ValidationResult:
        """
        Validate a request without writing to either org.

        Raises:
            ConfigurationError: If the template is unknown or malformed
            AuthError: If either org rejects its credentials
        """
        source = self.connection_provider(request.source_org_id)
        target = self.connection_provider(request.target_org_id)
        schema_resolver = self._schema_resolver()

        try:
            plan = await self._resolve(request, source, target, schema_resolver)
        except SchemaResolutionError as e:
            return ValidationResult(
                template_id=request.template_id,
                source_org_id=source.org_id,
                target_org_id=target.org_id,
                selected_record_count=len(request.selected_record_ids),
                issues=[ValidationIssue(
                    severity=Severity.ERROR,
                    title="Missing External ID Field",
                    message=str(e),
                    suggested_action="Install the external id field on the target object.",
                )],
            )

        return await self._validation_engine(schema_resolver).validate(plan, source, target)

    async def run(self, request: MigrationRequest, on_step: Optional[StepCallback] = None) -> RunResult:
        """
        Run a migration.

        Args:
            request: What to migrate
            on_step: Called with each StepResult as it completes

        Returns:
            RunResult; failures after resolution are reported in it

        Raises:
            ConfigurationError: If the template is unknown or malformed
            ConcurrencyError: If another run is active
        """
        template = self._load_template(request.template_id)
        if self.run_lock.locked:
            raise ConcurrencyError(f"Migration run {self.run_lock.active_run_id} is already in progress")

        source = self.connection_provider(request.source_org_id)
        target = self.connection_provider(request.target_org_id)
        schema_resolver = self._schema_resolver()

        try:
            plan = await self._resolve(request, source, target, schema_resolver)
        except (SchemaResolutionError, AuthError) as e:
            logger.error(f"Could not resolve {request.template_id}: {e}")
            return self._failed_before_start(request, [s.step_name for s in template.ordered_steps()], e)

        executor = StepExecutor(
            validation_engine=self._validation_engine(schema_resolver),
            hooks=self.hooks,
            max_parallel_batches=self.config.max_parallel_batches,
        )
        orchestrator = MigrationOrchestrator(
            executor,
            self.run_lock,
            self.run_store,
            self.hooks,
            rollback_on_failure=self.config.rollback_on_failure,
        )
        context = ExecutionContext(source=source, target=target, plan=plan)
        return await orchestrator.run(context, on_step=on_step)

    def _failed_before_start(self, request: MigrationRequest, step_names: List[str], error: Exception) -> RunResult:
        now = datetime.utcnow()
        run = RunResult(
            template_id=request.template_id,
            status=RunStatus.FAILED,
            source_org_id=request.source_org_id,
            target_org_id=request.target_org_id,
            selected_record_ids=list(request.selected_record_ids),
            step_results=[
                StepResult(step_name=name, status=StepStatus.SKIPPED, error_message="Plan could not be resolved")
                for name in step_names
            ],
            errors=[str(error)],
            started_at=now,
            completed_at=now,
        )
        self.run_store.save(run)
        return run

    def get_run(self, run_id: str) -> Optional[RunResult]:
        return self.run_store.get(run_id)

"""Pre-flight validation of a resolved plan against a record selection."""

import logging
from typing import List, Optional, Sequence

from .lookup_cache import LookupCache
from .placeholder_resolver import ResolvedPlan
from .schema_resolver import SchemaResolver
from .validation_rules import RuleContext, build_rules, friendly_title
from ..connections.base import OrgConnection
from ..exceptions import ApiError, AuthError, LookupCacheConflictError
from ..extractors.soql_extractor import SoqlExtractor
from ..models.template import ETLStep
from ..models.validation import Severity, ValidationIssue, ValidationResult

logger = logging.getLogger(__name__)


class ValidationEngine:
    """
    Runs every check declared on a plan and reports categorized issues.

    Validation never writes to either org. Its only side effect is filling
    the lookup cache with the rows of pre-validation queries, so it is safe
    to call repeatedly. It reports and never blocks: deciding whether errors
    stop a run is up to the caller.
    """

    def __init__(self, schema_resolver: SchemaResolver, large_batch_threshold: int = 200):
        """
        Initialize the validation engine.

        Args:
            schema_resolver: Resolver used for picklist metadata
            large_batch_threshold: Selections larger than this get a warning
        """
        self.schema_resolver = schema_resolver
        self.large_batch_threshold = large_batch_threshold

    async def run_pre_validation_queries(
        self,
        step: ETLStep,
        target: OrgConnection,
        cache: LookupCache,
    ) -> List[ValidationIssue]:
        """
        Run a step's pre-validation queries against the target org.

        Rows are stored under each query's cache key. Queries declaring an
        object and key field also seed lookup cache entries.

        Raises:
            AuthError: If the target credentials are rejected
        """
        issues = []
        for query in step.validation_config.pre_validation_queries:
            try:
                result = await target.query_all(query.soql_query)
            except AuthError:
                raise
            except ApiError as e:
                logger.warning(f"Pre-validation query {query.query_name} failed: {e}")
                cache.store_query_result(query.cache_key, [])
                issues.append(ValidationIssue(
                    severity=Severity.WARNING,
                    title=friendly_title(query.query_name),
                    message=f"Could not load target data for {query.query_name}: {e}",
                    check_name=query.query_name,
                    step_name=step.step_name,
                ))
                continue

            cache.store_query_result(query.cache_key, result.records)
            if query.object_name and query.key_field:
                for row in result.records:
                    key = row.get(query.key_field)
                    if key is None or not row.get("Id"):
                        continue
                    try:
                        cache.put(query.object_name, key, row["Id"], key_field=query.key_field)
                    except LookupCacheConflictError as e:
                        issues.append(ValidationIssue(
                            severity=Severity.WARNING,
                            title="Duplicate External ID",
                            message=str(e),
                            record_id=row["Id"],
                            check_name=query.query_name,
                            step_name=step.step_name,
                        ))

        return issues

    async def check_step(
        self,
        step: ETLStep,
        source: OrgConnection,
        target: OrgConnection,
        cache: LookupCache,
        selected_record_ids: Sequence[str] = (),
    ) -> List[ValidationIssue]:
        """
        Evaluate one step's checks.

        Pre-validation queries of every step must already be in the cache,
        since a dependency check may read rows loaded by another step.
        """
        issues: List[ValidationIssue] = []
        rules = build_rules(step)
        if not rules:
            return issues

        context = RuleContext(
            step=step,
            source=source,
            target=target,
            cache=cache,
            schema_resolver=self.schema_resolver,
            selected_record_ids=tuple(selected_record_ids),
        )
        if any(rule.needs_source_records for rule in rules):
            extractor = SoqlExtractor(source, step.extract_config, selected_record_ids)
            context.source_records = (await extractor.extract()).records

        for rule in rules:
            try:
                issues.extend(await rule.evaluate(context))
            except AuthError:
                raise
            except ApiError as e:
                logger.error(f"Check {rule.check_name} on {step.step_name} failed: {e}")
                issues.append(ValidationIssue(
                    severity=Severity.ERROR,
                    title=friendly_title(rule.check_name),
                    message=f"Failed to execute check: {e}",
                    check_name=rule.check_name,
                    step_name=step.step_name,
                ))

        return issues

    async def validate(
        self,
        plan: ResolvedPlan,
        source: OrgConnection,
        target: OrgConnection,
        selected_record_ids: Optional[Sequence[str]] = None,
        cache: Optional[LookupCache] = None,
    ) -> ValidationResult:
        """
        Validate a resolved plan.

        Args:
            plan: Resolved plan
            source: Source org connection
            target: Target org connection
            selected_record_ids: Candidate records (defaults to the plan's selection)
            cache: Cache to fill; a fresh one is used when omitted

        Returns:
            ValidationResult with issues grouped by severity

        Raises:
            AuthError: If either org rejects its credentials
        """
        selected = list(plan.selected_record_ids if selected_record_ids is None else selected_record_ids)
        cache = cache if cache is not None else LookupCache()
        result = ValidationResult(
            template_id=plan.template_id,
            source_org_id=source.org_id,
            target_org_id=target.org_id,
            selected_record_count=len(selected),
        )

        logger.info(f"Validating {plan.template_id} for {len(selected)} selected record(s)")

        for step_name, message in plan.unresolved_steps.items():
            result.issues.append(ValidationIssue(
                severity=Severity.ERROR,
                title="Missing Record Type",
                message=message,
                step_name=step_name,
                suggested_action="Create the record type in the target org before migrating.",
            ))

        steps = plan.template.ordered_steps()
        for step in steps:
            result.issues.extend(await self.run_pre_validation_queries(step, target, cache))
        for step in steps:
            result.issues.extend(await self.check_step(step, source, target, cache, selected))

        if len(selected) > self.large_batch_threshold:
            result.issues.append(ValidationIssue(
                severity=Severity.WARNING,
                title=friendly_title("largeBatch"),
                message=(
                    f"{len(selected)} records are selected; selections above "
                    f"{self.large_batch_threshold} may hit API limits."
                ),
                suggested_action="Split the selection into smaller batches.",
                check_name="largeBatch",
            ))

        logger.info(
            f"Validation finished: {result.summary['errors']} error(s), "
            f"{result.summary['warnings']} warning(s), {result.summary['info']} info"
        )
        return result

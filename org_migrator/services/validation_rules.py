"""Validation rule kinds.

Each rule kind wraps one check from a step's validation config and exposes
the same ``evaluate(context)`` coroutine, so the validation engine never
branches on the kind of check it is running.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from .lookup_cache import LookupCache
from .schema_resolver import SchemaResolver
from ..connections.base import OrgConnection
from ..exceptions import ConfigurationError
from ..models.record import SourceRecord
from ..models.template import (
    DataIntegrityCheck,
    DependencyCheck,
    ETLStep,
    ExpectedResult,
    MigrationTemplate,
    PicklistValidationCheck,
)
from ..models.validation import Severity, ValidationIssue

_NAMESPACE_PREFIX = re.compile(r"^[a-z0-9]+_*[a-z0-9]*__(?=.)")
_COUNT_QUERY = re.compile(r"\s*SELECT\s+COUNT\(\s*\)", re.IGNORECASE)

# Titles for well-known check names; anything else is derived from the name
CHECK_TITLES = {
    "orgConnectivity": "Organisation Connection Error",
    "largeBatch": "Large Record Selection",
    "recordTypeMappingCoverage": "Unmapped Record Types",
}


def friendly_title(check_name: str) -> str:
    """``checkOrphanedContacts`` becomes ``Check Orphaned Contacts``."""
    if check_name in CHECK_TITLES:
        return CHECK_TITLES[check_name]
    name = re.sub(r"__c\b", "", check_name).replace("_", " ")
    words = re.sub(r"([A-Z])", r" \1", name).split()
    return " ".join(w[:1].upper() + w[1:] for w in words)


def record_link(instance_url: Optional[str], record_id: Optional[str]) -> Optional[str]:
    if not instance_url or not record_id:
        return None
    return f"{instance_url.rstrip('/')}/{record_id}"


def derive_cache_key(object_name: str) -> str:
    """Default cache key for a target object: ``tc9_pr__Pay_Code__c`` -> ``target_pay_code``."""
    name = object_name.lower()
    if name.endswith("__c"):
        name = name[:-3]
    name = _NAMESPACE_PREFIX.sub("", name)
    return f"target_{name}"


def render_message(template: str, source_value: Any, record_name: str) -> str:
    return (
        template
        .replace("{sourceValue}", "null" if source_value is None else str(source_value))
        .replace("{recordName}", record_name)
    )


@dataclass
class RuleContext:
    """Everything a rule may read while evaluating one step."""
    step: ETLStep
    source: OrgConnection
    target: OrgConnection
    cache: LookupCache
    schema_resolver: SchemaResolver
    source_records: List[SourceRecord] = field(default_factory=list)
    selected_record_ids: Tuple[str, ...] = ()


class ValidationRule(ABC):
    """A single check evaluated against one step."""

    check_name: str = ""

    @property
    def needs_source_records(self) -> bool:
        return False

    @abstractmethod
    async def evaluate(self, context: RuleContext) -> List[ValidationIssue]:
        """Run the check and return the issues it finds."""

    def _issue(self, context: RuleContext, severity: Severity, message: str, **kwargs) -> ValidationIssue:
        return ValidationIssue(
            severity=severity,
            title=friendly_title(self.check_name),
            message=message,
            check_name=self.check_name,
            step_name=context.step.step_name,
            **kwargs,
        )


class DependencyCheckRule(ValidationRule):
    """Referenced values on source records must exist in the cached target data."""

    def __init__(self, check: DependencyCheck):
        self.check = check
        self.check_name = check.check_name

    @property
    def needs_source_records(self) -> bool:
        return True

    @property
    def cache_key(self) -> str:
        return self.check.cache_key or derive_cache_key(self.check.target_object)

    def _known_values(self, context: RuleContext) -> Optional[Set[str]]:
        rows = context.cache.query_result(self.cache_key)
        if rows is None:
            return None
        return {str(row.get(self.check.target_field)) for row in rows if row.get(self.check.target_field) is not None}

    async def evaluate(self, context: RuleContext) -> List[ValidationIssue]:
        known = self._known_values(context)
        if known is None:
            return [self._issue(
                context,
                Severity.ERROR,
                f"Target data for {self.check.target_object} was not loaded (cache key '{self.cache_key}')",
                suggested_action="Add a pre-validation query that populates this cache key.",
            )]

        parent_field = context.step.extract_config.selection_field
        issues = []
        for record in context.source_records:
            value = record.get_field(self.check.source_field)
            if value is None or value == "":
                continue
            if str(value) in known or context.cache.contains(self.check.target_object, value, self.check.target_field):
                continue

            if self.check.is_required:
                severity, template = Severity.ERROR, self.check.error_message
            else:
                severity = Severity.WARNING
                template = self.check.warning_message or self.check.error_message

            parent_id = record.get_field(parent_field) if parent_field and parent_field != "Id" else None
            issues.append(self._issue(
                context,
                severity,
                render_message(template, value, record.display_name),
                record_id=record.id,
                record_name=record.display_name,
                record_link=record_link(context.source.instance_url, record.id),
                parent_record_id=str(parent_id) if parent_id else None,
                suggested_action=(
                    f"Migrate the referenced {self.check.target_object} record first, "
                    f"or remove the reference from {record.display_name}."
                ),
            ))
        return issues


class DataIntegrityRule(ValidationRule):
    """Aggregate source query compared against its expected result."""

    def __init__(self, check: DataIntegrityCheck):
        self.check = check
        self.check_name = check.check_name

    def _passes(self, count: int, context: RuleContext) -> bool:
        expected = self.check.expected_result
        if expected == ExpectedResult.EMPTY:
            return count == 0
        if expected == ExpectedResult.NON_EMPTY:
            return count > 0
        target = self.check.expected_count
        if target is None:
            target = len(context.selected_record_ids)
        return count == target

    async def evaluate(self, context: RuleContext) -> List[ValidationIssue]:
        if _COUNT_QUERY.match(self.check.validation_query):
            rows: List[Dict[str, Any]] = []
            count = await context.source.count(self.check.validation_query)
        else:
            rows = (await context.source.query_all(self.check.validation_query)).records
            count = len(rows)
        if self._passes(count, context):
            return []

        severity = Severity(self.check.severity)
        message = self.check.error_message or f"{friendly_title(self.check_name)} returned {count} row(s)"
        offending = [row for row in rows if row.get("Id")]

        # Row-level queries yield one issue per row; aggregates yield a summary
        if offending and self.check.expected_result == ExpectedResult.EMPTY:
            return [
                self._issue(
                    context,
                    severity,
                    message,
                    record_id=row["Id"],
                    record_name=row.get("Name"),
                    record_link=record_link(context.source.instance_url, row["Id"]),
                )
                for row in offending
            ]
        return [self._issue(context, severity, message)]


class PicklistRule(ValidationRule):
    """Observed source picklist values must be accepted by the target field."""

    def __init__(self, check: PicklistValidationCheck):
        self.check = check
        self.check_name = check.name

    @property
    def needs_source_records(self) -> bool:
        return True

    async def _allowed_values(self, context: RuleContext) -> Optional[Set[str]]:
        if not self.check.validate_against_target:
            return set(self.check.allowed_values)
        return await context.schema_resolver.get_picklist_values(
            context.target,
            self.check.target_object or context.step.load_config.target_object,
            self.check.target_field or self.check.field_name,
        )

    async def evaluate(self, context: RuleContext) -> List[ValidationIssue]:
        allowed = await self._allowed_values(context)
        target_field = self.check.target_field or self.check.field_name
        if allowed is None:
            return [self._issue(
                context,
                Severity.ERROR,
                f"Field {target_field} does not exist on the target object",
            )]

        observed: Dict[str, List[SourceRecord]] = {}
        for record in context.source_records:
            value = record.get_field(self.check.field_name)
            if value is None or value == "":
                continue
            observed.setdefault(str(value), []).append(record)

        issues = []
        severity = Severity(self.check.severity)
        for value, records in sorted(observed.items()):
            if value in allowed:
                continue
            first = records[0]
            issues.append(self._issue(
                context,
                severity,
                f"Value '{value}' of {self.check.field_name} is not a valid {target_field} value "
                f"in the target org ({len(records)} record(s))",
                record_id=first.id,
                record_name=first.display_name,
                record_link=record_link(context.source.instance_url, first.id),
                suggested_action=f"Add '{value}' to the {target_field} picklist in the target org or map it.",
            ))
        return issues


def build_rules(step: ETLStep) -> List[ValidationRule]:
    """All rules declared on a step, in evaluation order."""
    config = step.validation_config
    rules: List[ValidationRule] = []
    rules.extend(DependencyCheckRule(c) for c in config.dependency_checks)
    rules.extend(DataIntegrityRule(c) for c in config.data_integrity_checks)
    rules.extend(PicklistRule(c) for c in config.picklist_validation_checks)
    return rules


def check_cache_keys(template: MigrationTemplate) -> None:
    """
    Ensure every dependency check reads a cache key that some step fills.

    Any step's pre-validation queries count, since all of them run before
    the first check is evaluated.

    Raises:
        ConfigurationError: If a dependency check's cache key is never populated
    """
    filled = {
        query.cache_key
        for step in template.etl_steps
        for query in step.validation_config.pre_validation_queries
    }
    for step in template.etl_steps:
        for check in step.validation_config.dependency_checks:
            key = check.cache_key or derive_cache_key(check.target_object)
            if key not in filled:
                raise ConfigurationError(
                    f"Dependency check {check.check_name} on step {step.step_name} reads cache key "
                    f"'{key}', but no pre-validation query populates it"
                )

"""Service layer for the migration engine."""

from .schema_resolver import SchemaResolver
from .template_store import TemplateStore
from .dependency_graph import check_execution_order, transitive_dependents
from .placeholder_resolver import (
    PlaceholderResolver,
    ResolvedPlan,
    ResolvedValues,
    check_placeholders,
    resolve_plan,
)
from .lookup_cache import LookupCache
from .validation_rules import (
    ValidationRule,
    DependencyCheckRule,
    DataIntegrityRule,
    PicklistRule,
    RuleContext,
    check_cache_keys,
)
from .validator import ValidationEngine
from .transformer import RecordTransformer

__all__ = [
    "SchemaResolver",
    "TemplateStore",
    "check_execution_order",
    "transitive_dependents",
    "PlaceholderResolver",
    "ResolvedPlan",
    "ResolvedValues",
    "check_placeholders",
    "resolve_plan",
    "LookupCache",
    "ValidationRule",
    "DependencyCheckRule",
    "DataIntegrityRule",
    "PicklistRule",
    "RuleContext",
    "check_cache_keys",
    "ValidationEngine",
    "RecordTransformer",
]

"""Data models for the migration engine."""

from .template import (
    TransformationType,
    ExpectedResult,
    ConcurrencyMode,
    ExtractConfig,
    FieldMapping,
    LookupMapping,
    RecordTypeMapping,
    TransformConfig,
    RetryConfig,
    LoadConfig,
    PreValidationQuery,
    DependencyCheck,
    DataIntegrityCheck,
    PicklistValidationCheck,
    ValidationConfig,
    ETLStep,
    MigrationTemplate,
)
from .record import (
    SourceRecord,
    TransformedRecord,
    RecordResult,
)
from .execution import (
    RunStatus,
    StepStatus,
    RecordError,
    StepResult,
    RunResult,
)
from .validation import (
    Severity,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    "TransformationType",
    "ExpectedResult",
    "ConcurrencyMode",
    "ExtractConfig",
    "FieldMapping",
    "LookupMapping",
    "RecordTypeMapping",
    "TransformConfig",
    "RetryConfig",
    "LoadConfig",
    "PreValidationQuery",
    "DependencyCheck",
    "DataIntegrityCheck",
    "PicklistValidationCheck",
    "ValidationConfig",
    "ETLStep",
    "MigrationTemplate",
    "SourceRecord",
    "TransformedRecord",
    "RecordResult",
    "RunStatus",
    "StepStatus",
    "RecordError",
    "StepResult",
    "RunResult",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
]

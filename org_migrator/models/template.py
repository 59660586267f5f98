"""Migration template definitions.

Templates are declarative and immutable: every config type is a frozen
dataclass, collections are tuples, and placeholder resolution produces a new
template rather than editing one in place. The JSON form uses camelCase keys.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


class TransformationType(str, Enum):
    """How a source value is coerced before it is written to the target."""
    DIRECT = "direct"
    BOOLEAN = "boolean"
    NUMBER = "number"
    PICKLIST = "picklist"


class ExpectedResult(str, Enum):
    """Expected outcome of a data-integrity query."""
    EMPTY = "empty"
    NON_EMPTY = "non-empty"
    COUNT_MATCH = "count-match"


class ConcurrencyMode(str, Enum):
    """Bulk API job concurrency."""
    PARALLEL = "parallel"
    SERIAL = "serial"


@dataclass(frozen=True)
class ExtractConfig:
    """Where a step reads its source records from."""
    soql_query: str
    object_api_name: str
    batch_size: int = 200
    selection_field: Optional[str] = None  # Filtered by selected ids when the query has no placeholder

    def to_dict(self) -> Dict[str, Any]:
        return {
            "soqlQuery": self.soql_query,
            "objectApiName": self.object_api_name,
            "batchSize": self.batch_size,
            "selectionField": self.selection_field,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractConfig":
        return cls(
            soql_query=data["soqlQuery"],
            object_api_name=data["objectApiName"],
            batch_size=data.get("batchSize", 200),
            selection_field=data.get("selectionField"),
        )


@dataclass(frozen=True)
class FieldMapping:
    """Copies one source field to one target field."""
    source_field: str
    target_field: str
    is_required: bool = False
    transformation_type: TransformationType = TransformationType.DIRECT
    transformation_config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceField": self.source_field,
            "targetField": self.target_field,
            "isRequired": self.is_required,
            "transformationType": self.transformation_type.value,
            "transformationConfig": dict(self.transformation_config),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMapping":
        return cls(
            source_field=data["sourceField"],
            target_field=data["targetField"],
            is_required=data.get("isRequired", False),
            transformation_type=TransformationType(data.get("transformationType", "direct")),
            transformation_config=dict(data.get("transformationConfig") or {}),
        )


@dataclass(frozen=True)
class LookupMapping:
    """Resolves a reference to another record by its external id."""
    source_field: str  # May traverse a parent relationship, e.g. Account__r.External_Id__c
    target_field: str
    lookup_object: str
    lookup_key_field: str
    cache_results: bool = True
    allow_null: bool = False  # Failed lookups write null instead of excluding the record

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceField": self.source_field,
            "targetField": self.target_field,
            "lookupObject": self.lookup_object,
            "lookupKeyField": self.lookup_key_field,
            "cacheResults": self.cache_results,
            "allowNull": self.allow_null,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LookupMapping":
        return cls(
            source_field=data["sourceField"],
            target_field=data["targetField"],
            lookup_object=data["lookupObject"],
            lookup_key_field=data["lookupKeyField"],
            cache_results=data.get("cacheResults", True),
            allow_null=data.get("allowNull", False),
        )


@dataclass(frozen=True)
class RecordTypeMapping:
    """Maps a source record type name to a target record type id."""
    source_field: str
    target_field: str
    mapping_dictionary: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceField": self.source_field,
            "targetField": self.target_field,
            "mappingDictionary": dict(self.mapping_dictionary),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecordTypeMapping":
        return cls(
            source_field=data["sourceField"],
            target_field=data["targetField"],
            mapping_dictionary=dict(data.get("mappingDictionary") or {}),
        )


@dataclass(frozen=True)
class TransformConfig:
    field_mappings: Tuple[FieldMapping, ...] = ()
    lookup_mappings: Tuple[LookupMapping, ...] = ()
    record_type_mapping: Optional[RecordTypeMapping] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fieldMappings": [m.to_dict() for m in self.field_mappings],
            "lookupMappings": [m.to_dict() for m in self.lookup_mappings],
            "recordTypeMapping": self.record_type_mapping.to_dict() if self.record_type_mapping else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransformConfig":
        record_type = data.get("recordTypeMapping")
        return cls(
            field_mappings=tuple(FieldMapping.from_dict(m) for m in data.get("fieldMappings") or []),
            lookup_mappings=tuple(LookupMapping.from_dict(m) for m in data.get("lookupMappings") or []),
            record_type_mapping=RecordTypeMapping.from_dict(record_type) if record_type else None,
        )


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    retry_wait_seconds: float = 5.0
    retryable_errors: Tuple[str, ...] = ("UNABLE_TO_LOCK_ROW", "REQUEST_LIMIT_EXCEEDED")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maxRetries": self.max_retries,
            "retryWaitSeconds": self.retry_wait_seconds,
            "retryableErrors": list(self.retryable_errors),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        defaults = cls()
        return cls(
            max_retries=data.get("maxRetries", defaults.max_retries),
            retry_wait_seconds=data.get("retryWaitSeconds", defaults.retry_wait_seconds),
            retryable_errors=tuple(data.get("retryableErrors", defaults.retryable_errors)),
        )


@dataclass(frozen=True)
class LoadConfig:
    """How a step writes its transformed records to the target."""
    target_object: str
    external_id_field: str
    operation: str = "upsert"
    use_bulk_api: bool = True
    batch_size: int = 200
    allow_partial_success: bool = False
    concurrency_mode: ConcurrencyMode = ConcurrencyMode.PARALLEL
    retry_config: RetryConfig = field(default_factory=RetryConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targetObject": self.target_object,
            "externalIdField": self.external_id_field,
            "operation": self.operation,
            "useBulkApi": self.use_bulk_api,
            "batchSize": self.batch_size,
            "allowPartialSuccess": self.allow_partial_success,
            "concurrencyMode": self.concurrency_mode.value,
            "retryConfig": self.retry_config.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoadConfig":
        return cls(
            target_object=data["targetObject"],
            external_id_field=data.get("externalIdField", "{externalIdField}"),
            operation=data.get("operation", "upsert"),
            use_bulk_api=data.get("useBulkApi", True),
            batch_size=data.get("batchSize", 200),
            allow_partial_success=data.get("allowPartialSuccess", False),
            concurrency_mode=ConcurrencyMode(data.get("concurrencyMode", "parallel").lower()),
            retry_config=RetryConfig.from_dict(data.get("retryConfig") or {}),
        )


@dataclass(frozen=True)
class PreValidationQuery:
    """Target-org query whose rows are cached before checks run."""
    query_name: str
    soql_query: str
    cache_key: str
    object_name: Optional[str] = None  # With key_field, rows also seed lookup cache entries
    key_field: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queryName": self.query_name,
            "soqlQuery": self.soql_query,
            "cacheKey": self.cache_key,
            "objectName": self.object_name,
            "keyField": self.key_field,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PreValidationQuery":
        return cls(
            query_name=data["queryName"],
            soql_query=data["soqlQuery"],
            cache_key=data["cacheKey"],
            object_name=data.get("objectName"),
            key_field=data.get("keyField"),
        )


@dataclass(frozen=True)
class DependencyCheck:
    """Every referenced value on a source record must exist in the target."""
    check_name: str
    source_field: str
    target_object: str
    target_field: str
    is_required: bool = True
    error_message: str = "Referenced record {sourceValue} for {recordName} does not exist in the target org"
    warning_message: Optional[str] = None
    cache_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checkName": self.check_name,
            "sourceField": self.source_field,
            "targetObject": self.target_object,
            "targetField": self.target_field,
            "isRequired": self.is_required,
            "errorMessage": self.error_message,
            "warningMessage": self.warning_message,
            "cacheKey": self.cache_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DependencyCheck":
        kwargs = {}
        if data.get("errorMessage"):
            kwargs["error_message"] = data["errorMessage"]
        return cls(
            check_name=data["checkName"],
            source_field=data["sourceField"],
            target_object=data["targetObject"],
            target_field=data["targetField"],
            is_required=data.get("isRequired", True),
            warning_message=data.get("warningMessage"),
            cache_key=data.get("cacheKey"),
            **kwargs,
        )


@dataclass(frozen=True)
class DataIntegrityCheck:
    """Aggregate source-org query compared against an expected result."""
    check_name: str
    validation_query: str
    expected_result: ExpectedResult = ExpectedResult.EMPTY
    error_message: str = ""
    severity: str = "error"
    expected_count: Optional[int] = None  # count-match defaults to the selected record count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checkName": self.check_name,
            "validationQuery": self.validation_query,
            "expectedResult": self.expected_result.value,
            "errorMessage": self.error_message,
            "severity": self.severity,
            "expectedCount": self.expected_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataIntegrityCheck":
        return cls(
            check_name=data["checkName"],
            validation_query=data["validationQuery"],
            expected_result=ExpectedResult(data.get("expectedResult", "empty")),
            error_message=data.get("errorMessage", ""),
            severity=data.get("severity", "error"),
            expected_count=data.get("expectedCount"),
        )


@dataclass(frozen=True)
class PicklistValidationCheck:
    """Observed source picklist values must be valid in the target."""
    field_name: str
    object_name: str
    validate_against_target: bool = True
    allowed_values: Tuple[str, ...] = ()
    severity: str = "warning"
    check_name: Optional[str] = None
    target_field: Optional[str] = None
    target_object: Optional[str] = None

    @property
    def name(self) -> str:
        return self.check_name or f"picklistValidation_{self.field_name}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checkName": self.check_name,
            "fieldName": self.field_name,
            "objectName": self.object_name,
            "validateAgainstTarget": self.validate_against_target,
            "allowedValues": list(self.allowed_values),
            "severity": self.severity,
            "targetField": self.target_field,
            "targetObject": self.target_object,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PicklistValidationCheck":
        return cls(
            field_name=data["fieldName"],
            object_name=data["objectName"],
            validate_against_target=data.get("validateAgainstTarget", True),
            allowed_values=tuple(data.get("allowedValues") or ()),
            severity=data.get("severity", "warning"),
            check_name=data.get("checkName"),
            target_field=data.get("targetField"),
            target_object=data.get("targetObject"),
        )


@dataclass(frozen=True)
class ValidationConfig:
    pre_validation_queries: Tuple[PreValidationQuery, ...] = ()
    dependency_checks: Tuple[DependencyCheck, ...] = ()
    data_integrity_checks: Tuple[DataIntegrityCheck, ...] = ()
    picklist_validation_checks: Tuple[PicklistValidationCheck, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preValidationQueries": [q.to_dict() for q in self.pre_validation_queries],
            "dependencyChecks": [c.to_dict() for c in self.dependency_checks],
            "dataIntegrityChecks": [c.to_dict() for c in self.data_integrity_checks],
            "picklistValidationChecks": [c.to_dict() for c in self.picklist_validation_checks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationConfig":
        return cls(
            pre_validation_queries=tuple(
                PreValidationQuery.from_dict(q) for q in data.get("preValidationQueries") or []
            ),
            dependency_checks=tuple(DependencyCheck.from_dict(c) for c in data.get("dependencyChecks") or []),
            data_integrity_checks=tuple(
                DataIntegrityCheck.from_dict(c) for c in data.get("dataIntegrityChecks") or []
            ),
            picklist_validation_checks=tuple(
                PicklistValidationCheck.from_dict(c) for c in data.get("picklistValidationChecks") or []
            ),
        )


@dataclass(frozen=True)
class ETLStep:
    """One extract/transform/load unit of a template."""
    step_name: str
    step_order: int
    extract_config: ExtractConfig
    transform_config: TransformConfig
    load_config: LoadConfig
    validation_config: ValidationConfig = field(default_factory=ValidationConfig)
    dependencies: FrozenSet[str] = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stepName": self.step_name,
            "stepOrder": self.step_order,
            "extractConfig": self.extract_config.to_dict(),
            "transformConfig": self.transform_config.to_dict(),
            "loadConfig": self.load_config.to_dict(),
            "validationConfig": self.validation_config.to_dict(),
            "dependencies": sorted(self.dependencies),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ETLStep":
        return cls(
            step_name=data["stepName"],
            step_order=data.get("stepOrder", 0),
            extract_config=ExtractConfig.from_dict(data["extractConfig"]),
            transform_config=TransformConfig.from_dict(data.get("transformConfig") or {}),
            load_config=LoadConfig.from_dict(data["loadConfig"]),
            validation_config=ValidationConfig.from_dict(data.get("validationConfig") or {}),
            dependencies=frozenset(data.get("dependencies") or ()),
        )


@dataclass(frozen=True)
class MigrationTemplate:
    """An ordered set of ETL steps migrating one logical object and its dependents."""
    id: str
    name: str
    etl_steps: Tuple[ETLStep, ...]
    execution_order: Tuple[str, ...]
    description: str = ""
    version: str = "1.0.0"
    category: str = ""

    def get_step(self, step_name: str) -> Optional[ETLStep]:
        """Get a step by name."""
        for step in self.etl_steps:
            if step.step_name == step_name:
                return step
        return None

    def ordered_steps(self) -> List[ETLStep]:
        """Steps in execution order; names without a matching step are skipped."""
        steps = []
        for name in self.execution_order:
            step = self.get_step(name)
            if step is not None:
                steps.append(step)
        return steps

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "category": self.category,
            "etlSteps": [s.to_dict() for s in self.etl_steps],
            "executionOrder": list(self.execution_order),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationTemplate":
        """Create from dictionary representation."""
        steps = tuple(ETLStep.from_dict(s) for s in data.get("etlSteps") or [])
        order = data.get("executionOrder")
        if order is None:
            order = [s.step_name for s in sorted(steps, key=lambda s: s.step_order)]
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            version=data.get("version", "1.0.0"),
            category=data.get("category", ""),
            etl_steps=steps,
            execution_order=tuple(order),
        )

    @classmethod
    def from_json_file(cls, file_path: str) -> "MigrationTemplate":
        """Load a template from a JSON file."""
        with open(file_path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)

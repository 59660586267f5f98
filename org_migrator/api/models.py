"""Pydantic models for API requests and responses."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class RunStatusEnum(str, Enum):
    DRAFT = "draft"
    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


class StepStatusEnum(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class SeverityEnum(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# Request Models
class MigrationRequestBody(BaseModel):
    template_id: str
    source_org_id: str
    target_org_id: str
    selected_record_ids: List[str] = Field(default_factory=list)


# Response Models
class ValidationIssueResponse(BaseModel):
    severity: SeverityEnum
    title: str
    message: str
    record_id: Optional[str] = None
    suggested_action: Optional[str] = None
    parent_record_id: Optional[str] = None
    record_name: Optional[str] = None
    record_link: Optional[str] = None
    check_name: Optional[str] = None
    step_name: Optional[str] = None


class ValidationResponse(BaseModel):
    template_id: str
    source_org_id: Optional[str] = None
    target_org_id: Optional[str] = None
    selected_record_count: int = 0
    validated_at: str
    is_valid: bool
    summary: Dict[str, int]
    errors: List[ValidationIssueResponse] = Field(default_factory=list)
    warnings: List[ValidationIssueResponse] = Field(default_factory=list)
    info: List[ValidationIssueResponse] = Field(default_factory=list)


class StepResultResponse(BaseModel):
    step_name: str
    target_object: str = ""
    status: StepStatusEnum
    total_records: int = 0
    successful_records: int = 0
    failed_records: int = 0
    created_records: int = 0
    error_message: Optional[str] = None
    rolled_back: int = 0
    annotations: List[str] = Field(default_factory=list)
    error_sample: List[str] = Field(default_factory=list)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_seconds: Optional[float] = None


class RunResponse(BaseModel):
    run_id: str
    template_id: str
    status: RunStatusEnum
    source_org_id: Optional[str] = None
    target_org_id: Optional[str] = None
    selected_record_ids: List[str] = Field(default_factory=list)
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    duration_seconds: Optional[float] = None
    total_records: int = 0
    successful_records: int = 0
    failed_records: int = 0
    steps: List[StepResultResponse] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    annotations: List[str] = Field(default_factory=list)


class TemplateSummary(BaseModel):
    id: str
    name: str
    description: str = ""
    version: Optional[str] = None
    category: Optional[str] = None
    steps: List[str] = Field(default_factory=list)


class TemplateListResponse(BaseModel):
    templates: List[TemplateSummary]
    total: int

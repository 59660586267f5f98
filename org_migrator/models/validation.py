"""Validation result models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class ValidationIssue:
    """A single finding from a validation pass."""
    severity: Severity
    title: str
    message: str
    record_id: Optional[str] = None
    suggested_action: Optional[str] = None
    parent_record_id: Optional[str] = None
    record_name: Optional[str] = None
    record_link: Optional[str] = None
    check_name: Optional[str] = None
    step_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "record_id": self.record_id,
            "suggested_action": self.suggested_action,
            "parent_record_id": self.parent_record_id,
            "record_name": self.record_name,
            "record_link": self.record_link,
            "check_name": self.check_name,
            "step_name": self.step_name,
        }


@dataclass
class ValidationResult:
    """Aggregated issues from validating a plan against a record selection."""
    template_id: str
    issues: List[ValidationIssue] = field(default_factory=list)
    source_org_id: Optional[str] = None
    target_org_id: Optional[str] = None
    selected_record_count: int = 0
    validated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    @property
    def info(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.INFO]

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "info": len(self.info),
        }

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation, grouping issues by severity."""
        return {
            "template_id": self.template_id,
            "source_org_id": self.source_org_id,
            "target_org_id": self.target_org_id,
            "selected_record_count": self.selected_record_count,
            "validated_at": self.validated_at.isoformat(),
            "is_valid": self.is_valid,
            "summary": self.summary,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
            "info": [i.to_dict() for i in self.info],
        }

"""Run and step execution models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


class RunStatus(str, Enum):
    """Status of a migration run."""
    DRAFT = "draft"
    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.PARTIAL_SUCCESS, RunStatus.FAILED)


class StepStatus(str, Enum):
    """Status of a single step within a run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RecordError:
    """A per-record failure captured in a step's error log."""
    record_id: str
    message: str
    phase: str = "load"  # transform or load
    code: Optional[str] = None
    external_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "message": self.message,
            "phase": self.phase,
            "code": self.code,
            "external_id": self.external_id,
        }


@dataclass
class StepResult:
    """Counts and error log for one step of a run."""
    step_name: str
    target_object: str = ""
    status: StepStatus = StepStatus.PENDING
    total_records: int = 0
    successful_records: int = 0
    failed_records: int = 0
    created_records: int = 0
    errors: List[RecordError] = field(default_factory=list)
    error_message: Optional[str] = None  # Step-level failure, e.g. schema resolution
    id_mappings: Dict[str, str] = field(default_factory=dict)  # external id -> target id
    created_ids: List[str] = field(default_factory=list)  # For rollback
    rolled_back: int = 0
    annotations: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def error_sample(self, limit: int = 10) -> List[str]:
        """Bounded sample of human-readable record errors."""
        messages = []
        if self.error_message:
            messages.append(self.error_message)
        for error in self.errors[:max(limit - len(messages), 0)]:
            messages.append(f"{error.record_id}: {error.message}")
        return messages

    def to_dict(self, max_error_samples: Optional[int] = None) -> Dict[str, Any]:
        """Convert to dictionary representation.

        Args:
            max_error_samples: Return a bounded message sample instead of the full error log
        """
        data = {
            "step_name": self.step_name,
            "target_object": self.target_object,
            "status": self.status.value,
            "total_records": self.total_records,
            "successful_records": self.successful_records,
            "failed_records": self.failed_records,
            "created_records": self.created_records,
            "error_message": self.error_message,
            "rolled_back": self.rolled_back,
            "annotations": self.annotations,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }
        if max_error_samples is None:
            data["errors"] = [e.to_dict() for e in self.errors]
            data["id_mappings"] = self.id_mappings
        else:
            data["error_sample"] = self.error_sample(max_error_samples)
        return data


@dataclass
class RunResult:
    """Aggregate result of one migration run."""
    template_id: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: RunStatus = RunStatus.DRAFT
    step_results: List[StepResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    annotations: List[str] = field(default_factory=list)
    source_org_id: Optional[str] = None
    target_org_id: Optional[str] = None
    selected_record_ids: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def total_records(self) -> int:
        return sum(s.total_records for s in self.step_results)

    @property
    def successful_records(self) -> int:
        return sum(s.successful_records for s in self.step_results)

    @property
    def failed_records(self) -> int:
        return sum(s.failed_records for s in self.step_results)

    def get_step(self, step_name: str) -> Optional[StepResult]:
        """Get a step result by step name."""
        for step in self.step_results:
            if step.step_name == step_name:
                return step
        return None

    def derive_status(self) -> RunStatus:
        """Overall status from the step outcomes."""
        statuses = [s.status for s in self.step_results]
        if self.errors or any(s in (StepStatus.FAILED, StepStatus.SKIPPED) for s in statuses):
            return RunStatus.FAILED
        if self.failed_records > 0:
            return RunStatus.PARTIAL_SUCCESS
        return RunStatus.COMPLETED

    def to_dict(self, max_error_samples: Optional[int] = None) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "run_id": self.run_id,
            "template_id": self.template_id,
            "status": self.status.value,
            "source_org_id": self.source_org_id,
            "target_org_id": self.target_org_id,
            "selected_record_ids": self.selected_record_ids,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "total_records": self.total_records,
            "successful_records": self.successful_records,
            "failed_records": self.failed_records,
            "steps": [s.to_dict(max_error_samples) for s in self.step_results],
            "errors": self.errors,
            "annotations": self.annotations,
        }

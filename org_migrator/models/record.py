"""Record models for data moving through a step."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


def get_field_value(data: Dict[str, Any], path: str) -> Any:
    """
    Get a value using dot notation, following parent relationships.

    ``Account__r.External_Id__c`` reads the nested relationship object the
    query API returns for a parent-field projection.
    """
    value: Any = data
    for part in path.split("."):
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(part)
        else:
            return None
    return value


@dataclass
class SourceRecord:
    """A record extracted from the source org."""
    id: str
    object_name: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, object_name: str, row: Dict[str, Any]) -> "SourceRecord":
        """Build from a raw query row, dropping the ``attributes`` envelope."""
        data = {k: v for k, v in row.items() if k != "attributes"}
        return cls(id=str(data.get("Id") or ""), object_name=object_name, data=data)

    def get_field(self, path: str) -> Any:
        return get_field_value(self.data, path)

    @property
    def display_name(self) -> str:
        """Human readable name used in validation messages."""
        return str(self.data.get("Name") or self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "object_name": self.object_name,
            "data": self.data,
        }


@dataclass
class TransformedRecord:
    """A target payload built from one source record."""
    source_id: str
    target_object: str
    data: Dict[str, Any] = field(default_factory=dict)
    external_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "target_object": self.target_object,
            "external_id": self.external_id,
            "data": self.data,
        }


@dataclass
class RecordResult:
    """Outcome of loading one record into the target."""
    source_id: str
    external_id: Optional[str] = None
    target_id: Optional[str] = None
    success: bool = False
    created: bool = False
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "external_id": self.external_id,
            "target_id": self.target_id,
            "success": self.success,
            "created": self.created,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "attempts": self.attempts,
        }

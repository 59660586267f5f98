"""Engine configuration."""

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Mapping, Optional

ENV_PREFIX = "ORG_MIGRATOR_"


@dataclass
class EngineConfig:
    """Settings shared by every run executed by one engine instance."""

    # External id field variants, tried in order: namespaced, unqualified, fallback
    external_id_namespace: str = "tc9_edc"
    external_id_base_name: str = "External_ID_Data_Creation__c"
    external_id_fallback: Optional[str] = "External_Id__c"

    # Remote calls
    api_version: str = "59.0"
    call_timeout_seconds: float = 120.0

    # Execution
    large_batch_threshold: int = 200
    max_parallel_batches: int = 5
    rollback_on_failure: bool = False

    # Reporting
    max_error_samples: int = 10
    output_dir: str = "./data"

    @property
    def external_id_candidates(self) -> List[str]:
        """External id field names to try, most specific first."""
        candidates = []
        if self.external_id_namespace:
            candidates.append(f"{self.external_id_namespace}__{self.external_id_base_name}")
        candidates.append(self.external_id_base_name)
        if self.external_id_fallback and self.external_id_fallback not in candidates:
            candidates.append(self.external_id_fallback)
        return candidates

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create from dictionary representation, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """
        Build a config from ``ORG_MIGRATOR_*`` environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            EngineConfig with defaults for every unset variable
        """
        environ = os.environ if environ is None else environ
        defaults = cls()
        values: Dict[str, Any] = {}

        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            default = getattr(defaults, f.name)
            if isinstance(default, bool):
                values[f.name] = raw.strip().lower() in ("1", "true", "yes", "on")
            elif isinstance(default, int):
                values[f.name] = int(raw)
            elif isinstance(default, float):
                values[f.name] = float(raw)
            else:
                values[f.name] = raw or None

        return cls(**values)

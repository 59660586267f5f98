"""Per-run execution context."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Tuple
import uuid

from .connections.base import OrgConnection
from .models.template import MigrationTemplate
from .services.lookup_cache import LookupCache
from .services.placeholder_resolver import ResolvedPlan


@dataclass
class ExecutionContext:
    """
    Everything one run works with.

    Owned by a single orchestrator run and discarded afterwards; the
    lookup cache lives exactly as long as the context.
    """
    source: OrgConnection
    target: OrgConnection
    plan: ResolvedPlan
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=datetime.utcnow)
    lookup_cache: LookupCache = field(default_factory=LookupCache)

    @property
    def template(self) -> MigrationTemplate:
        return self.plan.template

    @property
    def selected_record_ids(self) -> Tuple[str, ...]:
        return self.plan.selected_record_ids

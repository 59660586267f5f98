"""Persistence of run results."""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models.execution import RunResult

logger = logging.getLogger(__name__)


class RunStore(ABC):
    """Where the orchestrator records run and step results as they change."""

    @abstractmethod
    def save(self, run: RunResult) -> None:
        """Persist the current state of a run."""

    @abstractmethod
    def get(self, run_id: str) -> Optional[RunResult]:
        """Get a run by id."""

    @abstractmethod
    def list_runs(self) -> List[str]:
        """List stored run ids."""


class InMemoryRunStore(RunStore):
    """Keeps runs in process memory."""

    def __init__(self):
        self._runs: Dict[str, RunResult] = {}

    def save(self, run: RunResult) -> None:
        self._runs[run.run_id] = run

    def get(self, run_id: str) -> Optional[RunResult]:
        return self._runs.get(run_id)

    def list_runs(self) -> List[str]:
        return list(self._runs.keys())


class JsonFileRunStore(InMemoryRunStore):
    """Keeps runs in memory and writes a JSON report per run to disk."""

    def __init__(self, output_dir: str = "./data"):
        """
        Initialize the store.

        Args:
            output_dir: Base directory; reports go to ``<output_dir>/runs``
        """
        super().__init__()
        self.runs_dir = Path(output_dir) / "runs"
        self.runs_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, run_id: str) -> Path:
        return self.runs_dir / f"run_{run_id}.json"

    def save(self, run: RunResult) -> None:
        super().save(run)
        filepath = self._path(run.run_id)
        with open(filepath, "w") as f:
            json.dump(run.to_dict(), f, indent=2, default=str)
        logger.debug(f"Saved run report to {filepath}")

    def load_report(self, run_id: str) -> Optional[Dict[str, Any]]:
        """Read a stored report, including runs from earlier processes."""
        filepath = self._path(run_id)
        if not filepath.exists():
            return None
        with open(filepath, "r") as f:
            return json.load(f)

    def list_runs(self) -> List[str]:
        stored = {p.stem[len("run_"):] for p in self.runs_dir.glob("run_*.json")}
        return sorted(stored | set(super().list_runs()))

"""Lifecycle hooks invoked at pipeline stage boundaries."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Sequence

from .models.template import ETLStep

if TYPE_CHECKING:
    from .context import ExecutionContext

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Pipeline stages, in the order a run passes through them."""
    PRE_MIGRATION = "pre_migration"
    POST_EXTRACT = "post_extract"
    PRE_LOAD = "pre_load"
    POST_STEP = "post_step"
    POST_MIGRATION = "post_migration"


@dataclass(frozen=True)
class HookEvent:
    """
    What a hook sees at a stage boundary.

    ``output`` is the phase output: the extracted records (POST_EXTRACT),
    the records about to be loaded (PRE_LOAD), the StepResult (POST_STEP)
    or the RunResult (POST_MIGRATION).
    """
    stage: Stage
    context: "ExecutionContext"
    step: Optional[ETLStep] = None
    output: Any = None


class MigrationHook(ABC):
    """
    Typed hook interface.

    Hooks may only annotate results: the strings they return are appended
    to the step or run annotations. The resolved plan is frozen.
    """

    name: str = "hook"
    stages: Sequence[Stage] = tuple(Stage)

    @abstractmethod
    async def on_stage(self, event: HookEvent) -> Optional[List[str]]:
        """Handle a stage boundary and return annotations, if any."""


class HookRunner:
    """Invokes registered hooks in registration order."""

    def __init__(self, hooks: Iterable[MigrationHook] = ()):
        self.hooks = list(hooks)

    async def fire(
        self,
        stage: Stage,
        context: "ExecutionContext",
        step: Optional[ETLStep] = None,
        output: Any = None,
    ) -> List[str]:
        """
        Run every hook subscribed to a stage.

        A failing hook is logged and noted in the annotations; it never
        fails the step or the run.

        Returns:
            Annotations returned by the hooks
        """
        annotations: List[str] = []
        event = HookEvent(stage=stage, context=context, step=step, output=output)

        for hook in self.hooks:
            if stage not in hook.stages:
                continue
            try:
                notes = await hook.on_stage(event)
            except Exception as e:
                logger.error(f"Hook {hook.name} failed at {stage.value}: {e}")
                annotations.append(f"{hook.name}: failed at {stage.value}: {e}")
                continue
            if notes:
                annotations.extend(notes)

        return annotations

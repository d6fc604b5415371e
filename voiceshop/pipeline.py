"""Ordered step runner used by the chat turn."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger("voiceshop.pipeline")

ContextT = TypeVar("ContextT")


@dataclass
class TurnStep(Generic[ContextT]):
    """A named unit of work over the shared turn context."""
    name: str
    fn: Callable[[ContextT], None]
    skip_if: Optional[Callable[[ContextT], bool]] = None


class TurnPipeline(Generic[ContextT]):
    """Runs TurnSteps in declared order against one mutable context."""

    def __init__(self, steps: List[TurnStep[ContextT]]) -> None:
        self._steps = list(steps)

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self._steps]

    def run(self, context: ContextT) -> None:
        """Purpose: Apply every step to the context, honoring skip rules.
        Inputs/Outputs: Input is the turn context; results are written onto it.
        Side Effects / State: Whatever the steps do; logs per-step timing at debug.
        Dependencies: TurnStep.fn, TurnStep.skip_if.
        Failure Modes: The first step that raises stops the run; the error propagates.
        If Removed: A chat turn would never reach classification or dispatch.
        Testing Notes: Record step names into a list and compare the order.
        """
        for step in self._steps:
            if step.skip_if is not None and step.skip_if(context):
                logger.debug("step=%s status=skipped", step.name)
                continue
            started = time.perf_counter()
            step.fn(context)
            logger.debug("step=%s status=done elapsed_ms=%.1f", step.name, (time.perf_counter() - started) * 1000)

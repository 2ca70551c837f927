from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger("pricescout.pipeline")


@dataclass
class PipelineStep:
    """Named step for the analysis pipeline runner."""
    name: str
    fn: Callable[[object], None]


class StepRunner:
    """Runs pipeline steps in order over a shared mutable context."""

    def __init__(self, steps: List[PipelineStep]) -> None:
        """Purpose: Initialize the runner with an ordered list of steps.
        Inputs/Outputs: Input is a list of PipelineStep; no return value.
        Side Effects / State: Stores the step list for later execution.
        Dependencies: None beyond PipelineStep definitions.
        Failure Modes: None; assumes valid callables in steps.
        If Removed: The analysis pipeline cannot run.
        Testing Notes: Provide a minimal step list and ensure order is preserved.
        """
        self._steps = steps

    def run(self, context: object, run_id: str = "-") -> None:
        """Purpose: Execute steps in order, stopping at the first failure.
        Inputs/Outputs: Input is a mutable context object and a run id for logs.
        Side Effects / State: Invokes step functions that mutate context; logs each step.
        Dependencies: Depends on PipelineStep.fn.
        Failure Modes: The first exception is logged and re-raised; later steps never run.
        If Removed: Validation could no longer gate the gateway call.
        Testing Notes: Make step 1 raise and assert step 2 was not called.
        """
        for step in self._steps:
            started = time.perf_counter()
            try:
                step.fn(context)
            except Exception as exc:
                logger.info(
                    "run=%s step=%s status=failed error=%s",
                    run_id,
                    step.name,
                    type(exc).__name__,
                )
                raise
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info("run=%s step=%s status=success ms=%.1f", run_id, step.name, elapsed_ms)

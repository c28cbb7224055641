"""
Step runner — the central provisioning loop.

Takes an ordered list of named steps and runs them one at a time.
Package managers and service managers are not safe to drive in
parallel, and output has to stay readable, so there is no concurrency.

Flow:
    steps → validate names → run action → classify result → continue | abort
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from hostprep.core.engine.context import StepContext
from hostprep.core.models.step import Step, StepResult

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Accumulated outcome of one run. Never persisted."""

    results: list[StepResult] = field(default_factory=list)
    not_run: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == "skipped")

    @property
    def recoverable(self) -> list[StepResult]:
        """Failures the run continued past — the manual follow-up list."""
        return [r for r in self.results if r.status == "recoverable"]

    @property
    def fatal(self) -> StepResult | None:
        for r in self.results:
            if r.is_fatal:
                return r
        return None

    @property
    def aborted(self) -> bool:
        return self.fatal is not None

    @property
    def status(self) -> str:
        if self.aborted:
            return "failed"
        if self.recoverable:
            return "partial"
        return "ok"

    @property
    def exit_code(self) -> int:
        return 1 if self.aborted else 0

    def get(self, step: str) -> StepResult | None:
        for r in self.results:
            if r.step == step:
                return r
        return None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": len(self.recoverable) + (1 if self.aborted else 0),
            "aborted": self.aborted,
            "not_run": list(self.not_run),
            "results": [r.model_dump(mode="json") for r in self.results],
        }


class StepRunner:
    """Run steps sequentially, deciding centrally when to stop.

    A failed result on a step marked ``fatal`` (or a ``fatal_error``
    result from any step) aborts the run; every other failure is logged
    and the next step runs.
    """

    def __init__(self, context: StepContext):
        self._context = context

    @property
    def context(self) -> StepContext:
        return self._context

    def run(self, steps: list[Step]) -> RunReport:
        _check_unique(steps)
        report = RunReport()

        for index, step in enumerate(steps):
            logger.info("→ %s", step.name)
            result = self._run_one(step)
            report.results.append(result)

            if result.is_fatal:
                logger.error("✗ %s: %s", step.name, result.error)
                report.not_run = [s.name for s in steps[index + 1:]]
                break
            if result.status == "recoverable":
                logger.warning("⚠ %s: %s", step.name, result.error)
            else:
                marker = "✓" if result.ok else "⊘"
                logger.info("%s %s", marker, step.name)

        return report

    def _run_one(self, step: Step) -> StepResult:
        start = time.monotonic()
        try:
            result = step.action(self._context)
        except Exception as e:
            # Actions should return results, but a raising action is a failure too
            logger.debug("Step %s raised", step.name, exc_info=True)
            result = StepResult.failure(step.name, error=f"Unexpected error: {e}")

        if not isinstance(result, StepResult):
            result = StepResult.failure(
                step.name, error=f"Step returned {type(result).__name__}, not StepResult"
            )

        if result.step != step.name:
            result = result.model_copy(update={"step": step.name})
        if result.status == "recoverable" and step.fatal:
            result = result.model_copy(update={"status": "fatal"})

        result.duration_ms = int((time.monotonic() - start) * 1000)
        return result


def _check_unique(steps: list[Step]) -> None:
    seen: set[str] = set()
    for step in steps:
        if step.name in seen:
            raise ValueError(f"Duplicate step name: {step.name}")
        seen.add(step.name)

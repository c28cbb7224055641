"""
Step and StepResult models — the provisioning contract.

Steps represent requested operations. StepResults represent outcomes.
Every step action returns a StepResult; the runner alone decides whether
a failure is tolerated or aborts the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Callable, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from hostprep.core.engine.context import StepContext


StepStatus = Literal["ok", "skipped", "recoverable", "fatal"]


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class Step:
    """A named, statically defined unit of provisioning work.

    ``fatal`` marks steps whose failure makes the rest of the run
    meaningless (privilege checks, missing prerequisites).
    """

    name: str
    action: Callable[[StepContext], StepResult]
    fatal: bool = False
    description: str = ""


class StepResult(BaseModel):
    """Outcome of a single step."""

    step: str
    status: StepStatus = "ok"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status in ("recoverable", "fatal")

    @property
    def is_fatal(self) -> bool:
        return self.status == "fatal"

    @classmethod
    def success(cls, step: str, output: str = "", **kwargs: Any) -> StepResult:
        """Create a success result."""
        return cls(step=step, status="ok", output=output, **kwargs)

    @classmethod
    def skip(cls, step: str, reason: str = "", **kwargs: Any) -> StepResult:
        """Create a skip result (nothing to do)."""
        return cls(step=step, status="skipped", output=reason, **kwargs)

    @classmethod
    def failure(cls, step: str, error: str, **kwargs: Any) -> StepResult:
        """Create a recoverable failure result."""
        return cls(step=step, status="recoverable", error=error, **kwargs)

    @classmethod
    def fatal_error(cls, step: str, error: str, **kwargs: Any) -> StepResult:
        """Create a failure that aborts the run regardless of the step flag."""
        return cls(step=step, status="fatal", error=error, **kwargs)

"""
Adapter base — the contract between provisioning steps and system tools.

Steps never call subprocess or touch the filesystem directly; they go
through adapters, which NEVER raise. Every outcome comes back as a
Receipt, so a broken tool degrades into a failed step instead of a
traceback.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Literal

from pydantic import BaseModel, Field


class Receipt(BaseModel):
    """Result of one adapter operation."""

    adapter: str
    operation: str
    status: Literal["ok", "failed"] = "ok"

    output: str = ""
    error: str | None = None
    return_code: int | None = None
    duration_ms: int = 0
    dry_run: bool = False

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(
        cls,
        adapter: str,
        operation: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(adapter=adapter, operation=operation, status="ok", output=output, **kwargs)

    @classmethod
    def failure(
        cls,
        adapter: str,
        operation: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(adapter=adapter, operation=operation, status="failed", error=error, **kwargs)


class Adapter(ABC):
    """Abstract base class for all adapters."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'shell', 'filesystem', 'git')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available.

        Should be fast and never raise.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"

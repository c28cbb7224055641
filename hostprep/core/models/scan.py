"""
ScanReport — what one ClamAV run found.

Parsed from scanner text output; lives for one notification send.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ScanKind = Literal["deep", "fast"]


class ScanReport(BaseModel):
    scan_kind: ScanKind = "deep"

    scanned_files: int = 0
    scanned_dirs: int = 0
    infected: int = 0
    infected_lines: list[str] = Field(default_factory=list)

    duration_seconds: int | None = None
    elapsed_text: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def clean(self) -> bool:
        return self.infected == 0

    @property
    def incomplete(self) -> bool:
        """No summary numbers at all — the scan log was cut short."""
        return self.scanned_files == 0 and self.scanned_dirs == 0

    @property
    def duration_minutes(self) -> str:
        """Whole minutes, ``<1`` for short non-zero scans, ``Unknown`` if unset."""
        if self.duration_seconds is None:
            return self.elapsed_text or "Unknown"
        minutes = self.duration_seconds // 60
        if minutes == 0 and self.duration_seconds > 0:
            return "<1"
        return str(minutes)

"""
Domain models — Pydantic types for provisioning.

All models are re-exported here for convenient access:

    from hostprep.core.models import DistroInfo, DistroProfile, Step, StepResult
"""

from hostprep.core.models.config import (
    ClamavSettings,
    DotfileRepo,
    FirewallSettings,
    HostprepConfig,
    LanRule,
)
from hostprep.core.models.distro import (
    DistroInfo,
    DistroProfile,
    ExtraRepository,
    PackageManager,
)
from hostprep.core.models.scan import ScanReport
from hostprep.core.models.step import Step, StepResult

__all__ = [
    # config.py
    "ClamavSettings",
    "DotfileRepo",
    "FirewallSettings",
    "HostprepConfig",
    "LanRule",
    # distro.py
    "DistroInfo",
    "DistroProfile",
    "ExtraRepository",
    "PackageManager",
    # scan.py
    "ScanReport",
    # step.py
    "Step",
    "StepResult",
]

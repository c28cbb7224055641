"""
Distro detection — turn the OS-release file into a distribution family.

    ID_LIKE="ubuntu debian"  →  debian
    ID=garuda, ID_LIKE=arch  →  arch
    ID=fedora                →  fedora

Matching is substring containment so compound ``ID_LIKE`` values and
derivatives resolve to their parent family.
"""

from __future__ import annotations

import logging
from pathlib import Path

from hostprep.core.models.distro import DistroInfo

logger = logging.getLogger(__name__)

OS_RELEASE_PATHS: tuple[Path, ...] = (
    Path("/etc/os-release"),
    Path("/usr/lib/os-release"),
)

# Checked in order; ubuntu is folded into the debian family.
_FAMILY_PATTERNS: tuple[tuple[str, str], ...] = (
    ("arch", "arch"),
    ("debian", "debian"),
    ("ubuntu", "debian"),
    ("fedora", "fedora"),
    ("alpine", "alpine"),
)


class UnsupportedDistro(Exception):
    """No package plan exists for this distribution. Always fatal."""

    def __init__(self, distro_id: str):
        self.distro_id = distro_id
        label = distro_id or "unknown"
        super().__init__(f"Unsupported distribution: {label}")


def parse_os_release(text: str) -> dict[str, str]:
    """Parse OS-release content into a dict.

    Blank lines and ``#`` comments are ignored; surrounding single or
    double quotes are stripped from values.
    """
    fields: dict[str, str] = {}
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            logger.debug("os-release line %d ignored: %r", lineno, raw)
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        fields[key] = value
    return fields


def read_os_release(path: Path | None = None) -> dict[str, str]:
    """Read and parse the OS-release file.

    Raises:
        UnsupportedDistro: Neither candidate file is readable.
    """
    candidates = (path,) if path is not None else OS_RELEASE_PATHS
    for candidate in candidates:
        try:
            text = candidate.read_text(encoding="utf-8")
        except OSError:
            continue
        logger.debug("Read %s", candidate)
        return parse_os_release(text)

    logger.error("No os-release file found (tried %s)", ", ".join(map(str, candidates)))
    raise UnsupportedDistro("")


def match_family(value: str) -> str | None:
    """First family whose name appears in ``value`` (case-insensitive)."""
    lowered = value.lower()
    for pattern, family in _FAMILY_PATTERNS:
        if pattern in lowered:
            return family
    return None


def detect_distro(fields: dict[str, str]) -> DistroInfo:
    """Resolve parsed OS-release fields to a DistroInfo.

    ``ID_LIKE`` wins when it names a known family; otherwise ``ID`` is
    tried.

    Raises:
        UnsupportedDistro: Neither field names a known family.
    """
    distro_id = fields.get("ID", "")
    id_like = fields.get("ID_LIKE", "")

    family = match_family(id_like) if id_like else None
    if family is None:
        family = match_family(distro_id)
    if family is None:
        raise UnsupportedDistro(distro_id)

    info = DistroInfo(
        family=family,
        id=distro_id,
        id_like=id_like,
        version_id=fields.get("VERSION_ID", ""),
        # Mint and other Ubuntu derivatives report their own VERSION_CODENAME
        version_codename=fields.get("UBUNTU_CODENAME") or fields.get("VERSION_CODENAME", ""),
        pretty_name=fields.get("PRETTY_NAME", ""),
    )
    logger.info("Detected %s (family=%s)", info.pretty_name or distro_id, family)
    return info

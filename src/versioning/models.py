"""Data models for version constraints."""

from dataclasses import dataclass
from enum import Enum


class ConstraintMode(Enum):
    """How a version constraint selects among available versions."""
    EXACT = "exact"
    RANGE = "range"
    LATEST = "latest"


@dataclass(frozen=True)
class VersionSpec:
    """Normalized representation of a version constraint and derived behavior flags."""
    raw: str
    mode: ConstraintMode
    include_prerelease: bool = False


LATEST = VersionSpec(raw="latest", mode=ConstraintMode.LATEST)

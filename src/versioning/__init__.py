"""Version parsing and constraint matching."""

from .constraints import compare_versions, parse_version, pick_highest, satisfies
from .models import ConstraintMode, VersionSpec
from .parser import parse_constraint, parse_service_token

__all__ = [
    "ConstraintMode",
    "VersionSpec",
    "compare_versions",
    "parse_constraint",
    "parse_service_token",
    "parse_version",
    "pick_highest",
    "satisfies",
]

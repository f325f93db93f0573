"""Semantic version comparison and constraint matching."""

import re
from typing import Iterable, Optional

import semantic_version

from .models import ConstraintMode, VersionSpec
from .parser import parse_constraint


def parse_version(version: str) -> semantic_version.Version:
    """Parse a version string, coercing partial forms like ``2`` or ``2.1``.

    Raises:
        ValueError: If the string cannot be read as a version at all.
    """
    text = version.strip()
    if text.startswith(('v', 'V')):
        text = text[1:]
    try:
        return semantic_version.Version(text)
    except ValueError:
        return semantic_version.Version.coerce(text)


def compare_versions(left: str, right: str) -> int:
    """Return -1, 0 or 1 comparing two version strings semantically.

    Unparseable versions sort below every parseable one and compare
    lexically among themselves.
    """
    left_v = _safe_parse(left)
    right_v = _safe_parse(right)
    if left_v is None or right_v is None:
        if left_v is not None:
            return 1
        if right_v is not None:
            return -1
        return (left > right) - (left < right)
    return (left_v > right_v) - (left_v < right_v)


def _safe_parse(version: str) -> Optional[semantic_version.Version]:
    try:
        return parse_version(version)
    except ValueError:
        return None


def _normalize_spec(spec_str: str) -> str:
    """Normalize hyphen and x-ranges into SimpleSpec-compatible form."""
    s = spec_str.strip()

    # Hyphen ranges: "1.2.3 - 1.4.5" => ">=1.2.3,<=1.4.5"
    m = re.match(r'^\s*([0-9A-Za-z\.\+]+)\s+-\s+([0-9A-Za-z\.\+]+)\s*$', s)
    if m:
        return f">={m.group(1)},<={m.group(2)}"

    s2 = s.replace('*', 'x').lower()
    m = re.match(r'^\s*(\d+)\.(\d+)\.x\s*$', s2)
    if m:
        major, minor = int(m.group(1)), int(m.group(2))
        return f">={major}.{minor}.0,<{major}.{minor + 1}.0"

    m = re.match(r'^\s*(\d+)(\.x)?\s*$', s2)
    if m:
        major = int(m.group(1))
        return f">={major}.0.0,<{major + 1}.0.0"

    return s


def _build_spec(raw: str):
    # NpmSpec understands ^, ~, hyphen ranges, x-ranges and ||
    try:
        return semantic_version.NpmSpec(raw)
    except ValueError:
        return semantic_version.SimpleSpec(_normalize_spec(raw))


def satisfies(version: str, constraint) -> bool:
    """Return True when ``version`` meets ``constraint``.

    Args:
        version: Concrete version string.
        constraint: VersionSpec, raw constraint string or None.

    Raises:
        ValueError: If the constraint itself cannot be parsed.
    """
    spec = constraint if isinstance(constraint, VersionSpec) else parse_constraint(constraint)
    if spec.mode == ConstraintMode.LATEST:
        return True

    parsed = _safe_parse(version)
    if spec.mode == ConstraintMode.EXACT:
        wanted = _safe_parse(spec.raw)
        if parsed is None or wanted is None:
            return version.strip() == spec.raw
        return parsed == wanted

    if parsed is None:
        return False
    if parsed.prerelease and not spec.include_prerelease:
        return False
    return _build_spec(spec.raw).match(parsed)


def pick_highest(versions: Iterable[str], constraint=None) -> Optional[str]:
    """Pick the highest version that satisfies ``constraint``."""
    best: Optional[str] = None
    for candidate in versions:
        if not satisfies(candidate, constraint):
            continue
        if best is None or compare_versions(candidate, best) > 0:
            best = candidate
    return best

"""Token parsing utilities for service references and version constraints."""

import re
from typing import Optional, Tuple

import semantic_version

from .models import LATEST, ConstraintMode, VersionSpec


def tokenize_rightmost_at(s: str) -> Tuple[str, Optional[str]]:
    """Return (identifier, constraint or None) using the rightmost-@ rule."""
    s = s.strip()
    if '@' not in s:
        return s, None
    identifier, _, spec_part = s.rpartition('@')
    spec_part = spec_part.strip()
    return identifier.strip(), spec_part or None


def split_service_key(identifier: str) -> Tuple[str, str]:
    """Split ``type:provider`` or ``type/provider`` into its two parts.

    Raises:
        ValueError: If the identifier does not name both parts.
    """
    for sep in (':', '/'):
        if sep in identifier:
            service_type, _, provider = identifier.partition(sep)
            service_type, provider = service_type.strip(), provider.strip()
            if service_type and provider:
                return service_type.lower(), provider.lower()
            break
    raise ValueError(f"Invalid service reference '{identifier}'. Expected 'type:provider'.")


_RANGE_OPS = ['^', '~', '*', ' - ', '<', '>', '=', '!', ',', '||']
_WILDCARDS = {'x', 'X', '*'}
# a digit followed by a hyphenated identifier, e.g. "1.0.0-next.1"
_PRERELEASE = re.compile(r'\d-[0-9A-Za-z]')


def _determine_constraint_mode(spec: str) -> ConstraintMode:
    """Determine constraint mode from spec string."""
    if semantic_version.validate(spec):
        return ConstraintMode.EXACT
    if any(op in spec for op in _RANGE_OPS):
        return ConstraintMode.RANGE
    if any(part in _WILDCARDS for part in spec.split('.')):
        return ConstraintMode.RANGE
    return ConstraintMode.EXACT


def _determine_include_prerelease(spec: str) -> bool:
    return bool(_PRERELEASE.search(spec))


def parse_constraint(raw: Optional[str]) -> VersionSpec:
    """Parse a raw constraint string into a VersionSpec.

    ``None``, empty strings and ``latest`` all mean "highest available".
    """
    if raw is None or raw.strip() == '' or raw.strip().lower() == 'latest':
        return LATEST
    spec = raw.strip()
    return VersionSpec(
        raw=spec,
        mode=_determine_constraint_mode(spec),
        include_prerelease=_determine_include_prerelease(spec),
    )


def parse_service_token(token: str) -> Tuple[str, str, Optional[str]]:
    """Parse ``type:provider[@constraint]`` into its parts."""
    identifier, constraint = tokenize_rightmost_at(token)
    service_type, provider = split_service_key(identifier)
    return service_type, provider, constraint

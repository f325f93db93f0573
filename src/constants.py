"""Constants used in the project."""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ServiceType(str, Enum):
    """Service categories known to the resolver.

    Args:
        Enum (string): Category name as used in service references.
    """

    AUTH = "auth"
    DATABASE = "database"
    CACHE = "cache"
    PAYMENTS = "payments"
    EMAIL = "email"
    STORAGE = "storage"
    ANALYTICS = "analytics"
    MONITORING = "monitoring"
    SEARCH = "search"
    QUEUE = "queue"
    REALTIME = "realtime"
    CMS = "cms"
    RBAC = "rbac"
    NOTIFICATIONS = "notifications"
    AI = "ai"
    I18N = "i18n"
    API = "api"
    DEPLOYMENT = "deployment"


class MergeStrategy(str, Enum):
    """Policies for resolving same-type provider collisions.

    Args:
        Enum (string): Strategy name.
    """

    PREFER_NEWER = "prefer-newer"
    PREFER_COMPATIBLE = "prefer-compatible"
    MANUAL = "manual"


class Severity(str, Enum):
    """Issue severities, lowest first."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class EdgeKind(str, Enum):
    """Dependency edge tags."""

    REQUIRED = "required"
    OPTIONAL = "optional"


class ResolutionState(str, Enum):
    """Per-request pipeline states."""

    PENDING = "pending"
    MERGING = "merging"
    EXPANDING = "expanding"
    DETECTING_CYCLES = "detecting-cycles"
    ORDERING = "ordering"
    VALIDATING_COMPATIBILITY = "validating-compatibility"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CACHED = "cached"


class ResolutionEvent(str, Enum):
    """Lifecycle events emitted by the orchestrator."""

    STARTED = "resolution-started"
    COMPLETED = "resolution-completed"
    FAILED = "resolution-failed"


class DefaultScores(Enum):
    """Penalties used by the compatibility score.

    Args:
        Enum (int): Points deducted from 100 per issue.
    """

    CRITICAL_PENALTY = 25
    ERROR_PENALTY = 15
    WARNING_PENALTY = 5
    MAX_SCORE = 100


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"
    ENV_LOG_LEVEL = "SVCRESOLVE_LOG_LEVEL"
    ENV_CONFIG = "SVCRESOLVE_CONFIG"
    ENV_TIMEOUT = "SVCRESOLVE_TIMEOUT_SEC"
    ENV_CACHE_TTL = "SVCRESOLVE_CACHE_TTL_SEC"
    DEFAULT_CONFIG_PATH = os.path.join("~", ".config", "svcresolve", "svcresolve.yml")

    DEFAULT_TIMEOUT_SEC = 30.0
    DEFAULT_STRATEGY = MergeStrategy.PREFER_NEWER

    CACHE_TTL_SEC = 3600
    CACHE_MAX_ENTRIES = 10000
    CACHE_CLEANUP_INTERVAL_SEC = 60

    OPTIMIZER_MAX_ITERATIONS = 50
    MAX_CONFLICT_SUBSTITUTIONS = 5
    SUGGESTION_LIMIT = 10


# YAML keys (dot paths) mapped onto Constants attributes.
_CONFIG_KEYS = {
    "resolution.timeout_sec": ("DEFAULT_TIMEOUT_SEC", float),
    "resolution.strategy": ("DEFAULT_STRATEGY", MergeStrategy),
    "resolution.max_conflict_substitutions": ("MAX_CONFLICT_SUBSTITUTIONS", int),
    "cache.ttl_sec": ("CACHE_TTL_SEC", int),
    "cache.max_entries": ("CACHE_MAX_ENTRIES", int),
    "cache.cleanup_interval_sec": ("CACHE_CLEANUP_INTERVAL_SEC", int),
    "optimizer.max_iterations": ("OPTIMIZER_MAX_ITERATIONS", int),
    "suggestions.limit": ("SUGGESTION_LIMIT", int),
}


def _get_dot_path(data: Dict[str, Any], path: str) -> Any:
    current: Any = data
    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return None
    return current


def _apply_config(data: Dict[str, Any]) -> None:
    """Overlay known keys from a parsed config mapping onto Constants."""
    for path, (attr, cast) in _CONFIG_KEYS.items():
        value = _get_dot_path(data, path)
        if value is None:
            continue
        try:
            setattr(Constants, attr, cast(value))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid config value for %s: %r", path, value)


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load YAML configuration and apply it to Constants.

    Precedence: explicit path, then SVCRESOLVE_CONFIG, then the default
    user config location. Environment overrides are applied last.

    Returns:
        The parsed mapping (empty when no config file was found).
    """
    import yaml  # pylint: disable=import-outside-toplevel

    candidate = path or os.environ.get(Constants.ENV_CONFIG) or Constants.DEFAULT_CONFIG_PATH
    candidate = os.path.expanduser(candidate)
    data: Dict[str, Any] = {}
    if os.path.isfile(candidate):
        try:
            with open(candidate, "r", encoding="utf-8") as fh:
                loaded = yaml.safe_load(fh) or {}
            if isinstance(loaded, dict):
                data = loaded
            else:
                logger.warning("Config file %s is not a mapping; ignoring", candidate)
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Failed to load config %s: %s", candidate, exc)
    else:
        logger.debug("No config file at %s", candidate)

    _apply_config(data)
    _apply_env_overrides()
    return data


def _apply_env_overrides() -> None:
    timeout = os.environ.get(Constants.ENV_TIMEOUT)
    if timeout:
        try:
            Constants.DEFAULT_TIMEOUT_SEC = float(timeout)
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", Constants.ENV_TIMEOUT, timeout)
    ttl = os.environ.get(Constants.ENV_CACHE_TTL)
    if ttl:
        try:
            Constants.CACHE_TTL_SEC = int(ttl)
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", Constants.ENV_CACHE_TTL, ttl)


_config_loaded = False


def load_config(path: Optional[str] = None) -> None:
    """Apply YAML and environment configuration to Constants once per process.

    An explicit ``path`` is always (re)loaded.
    """
    global _config_loaded  # pylint: disable=global-statement
    if _config_loaded and path is None:
        return
    _load_yaml_config(path)
    _config_loaded = True

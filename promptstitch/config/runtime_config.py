"""Runtime configuration for the prompt engine.

Provides centralized configuration for version tags, variant bounds,
template strictness and the event sink. Environment variables take
precedence over YAML config.

Usage:
    from promptstitch.config.runtime_config import get_engine_config

    config = get_engine_config()
    config.template_version    # "3.2"
    config.strict_templates    # False unless PROMPTSTITCH_STRICT_TEMPLATES=1

Environment overrides:
    PROMPTSTITCH_CONFIG            Path to an alternative engine.yaml
    PROMPTSTITCH_STRICT_TEMPLATES  "1"/"true" to reject unusable custom templates
    PROMPTSTITCH_EVENT_SINK        none | logging | jsonl
    PROMPTSTITCH_EVENT_LOG         Path of the JSONL event log
    PROMPTSTITCH_TEMPLATE_VERSION  Template version tag stamped on metadata
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "engine.yaml"
_cached_config: Optional[Dict[str, Any]] = None
_cached_path: Optional[Path] = None
_cached_from_file = False

# Hard bounds on how many variants a single request may produce
VARIANT_MIN = 2
VARIANT_MAX = 5

VALID_EVENT_SINKS = ("none", "logging", "jsonl")
_TRUE_VALUES = ("1", "true", "yes", "on")

DEFAULT_OPERATOR_POOL: Tuple[str, ...] = (
    "tone_shift",
    "detail_expansion",
    "detail_reduction",
    "format_transform",
)


def _clamp_variant_bound(value: Any, name: str, default: int) -> int:
    """Clamp a configured variant bound to [VARIANT_MIN, VARIANT_MAX] with logging."""
    try:
        value = int(value)
    except (TypeError, ValueError):
        logger.warning("Variant bound '%s' has non-integer value %r. Using %d.", name, value, default)
        return default

    if value < VARIANT_MIN:
        logger.warning(
            "Variant bound '%s' value %d is below minimum %d. Clamping to %d.",
            name, value, VARIANT_MIN, VARIANT_MIN,
        )
        return VARIANT_MIN
    if value > VARIANT_MAX:
        logger.warning(
            "Variant bound '%s' value %d exceeds maximum %d. Clamping to %d.",
            name, value, VARIANT_MAX, VARIANT_MAX,
        )
        return VARIANT_MAX
    return value


@dataclass(frozen=True)
class EngineConfig:
    """Resolved engine configuration after env > YAML > defaults cascade."""
    template_version: str = "3.2"
    engine_version: str = "1.0.0"
    variant_min_count: int = VARIANT_MIN
    variant_max_count: int = VARIANT_MAX
    operator_pool: Tuple[str, ...] = DEFAULT_OPERATOR_POOL
    strict_templates: bool = False
    event_sink: str = "logging"
    event_log_path: Path = field(default_factory=lambda: Path(".promptstitch/events.jsonl"))
    source: str = "default"  # "default" | "file" | "env"


def _config_path() -> Path:
    override = os.environ.get("PROMPTSTITCH_CONFIG")
    return Path(override) if override else _CONFIG_PATH


def _default_config() -> Dict[str, Any]:
    """Return default configuration if engine.yaml doesn't exist."""
    return {
        "version": "1.0",
        "versions": {"template": "3.2", "engine": "1.0.0"},
        "variants": {
            "min_count": VARIANT_MIN,
            "max_count": VARIANT_MAX,
            "operator_pool": list(DEFAULT_OPERATOR_POOL),
        },
        "templates": {"strict": False},
        "events": {"sink": "logging", "path": ".promptstitch/events.jsonl"},
    }


def _load_config() -> Dict[str, Any]:
    """Load engine.yaml configuration, with caching.

    A missing, unreadable or malformed file yields the built-in defaults;
    the latter two are logged as warnings.
    """
    global _cached_config, _cached_path, _cached_from_file
    path = _config_path()
    if _cached_config is not None and _cached_path == path:
        return _cached_config

    _cached_from_file = False
    _cached_config = _default_config()
    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not load engine config from %s: %s. Using defaults.", path, e)
        else:
            if isinstance(data, dict):
                _cached_config = data
                _cached_from_file = True
            else:
                logger.warning("Engine config %s is not a mapping. Using defaults.", path)
    else:
        logger.debug("No engine config at %s; using defaults", path)

    _cached_path = path
    return _cached_config


def reset_config() -> None:
    """Drop the cached YAML so the next lookup re-reads it."""
    global _cached_config, _cached_path, _cached_from_file
    _cached_config = None
    _cached_path = None
    _cached_from_file = False


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() in _TRUE_VALUES


def get_engine_config() -> EngineConfig:
    """Resolve the effective engine configuration.

    Precedence (highest to lowest):
    1. PROMPTSTITCH_* environment variables
    2. engine.yaml (or the file named by PROMPTSTITCH_CONFIG)
    3. Built-in defaults

    Returns:
        EngineConfig with validated values. Invalid settings are logged
        and replaced by defaults.
    """
    config = _load_config()
    source = "file" if _cached_from_file else "default"

    versions = config.get("versions", {}) or {}
    variants = config.get("variants", {}) or {}
    templates = config.get("templates", {}) or {}
    events = config.get("events", {}) or {}

    min_count = _clamp_variant_bound(variants.get("min_count", VARIANT_MIN), "min_count", VARIANT_MIN)
    max_count = _clamp_variant_bound(variants.get("max_count", VARIANT_MAX), "max_count", VARIANT_MAX)
    if min_count > max_count:
        logger.warning(
            "Variant min_count %d exceeds max_count %d. Using %d-%d.",
            min_count, max_count, VARIANT_MIN, VARIANT_MAX,
        )
        min_count, max_count = VARIANT_MIN, VARIANT_MAX

    pool = tuple(str(op) for op in (variants.get("operator_pool") or DEFAULT_OPERATOR_POOL))

    template_version = str(versions.get("template", "3.2"))
    strict = bool(templates.get("strict", False))
    sink = str(events.get("sink", "logging")).lower()
    log_path = Path(events.get("path", ".promptstitch/events.jsonl"))

    env_template_version = os.environ.get("PROMPTSTITCH_TEMPLATE_VERSION")
    if env_template_version:
        template_version = env_template_version
        source = "env"

    env_strict = _env_flag("PROMPTSTITCH_STRICT_TEMPLATES")
    if env_strict is not None:
        strict = env_strict
        source = "env"

    env_sink = os.environ.get("PROMPTSTITCH_EVENT_SINK")
    if env_sink:
        sink = env_sink.strip().lower()
        source = "env"

    env_log = os.environ.get("PROMPTSTITCH_EVENT_LOG")
    if env_log:
        log_path = Path(env_log)
        source = "env"

    if sink not in VALID_EVENT_SINKS:
        logger.warning(
            "Invalid event sink '%s' (valid: %s). Falling back to 'logging'.",
            sink,
            ", ".join(VALID_EVENT_SINKS),
        )
        sink = "logging"

    return EngineConfig(
        template_version=template_version,
        engine_version=str(versions.get("engine", "1.0.0")),
        variant_min_count=min_count,
        variant_max_count=max_count,
        operator_pool=pool,
        strict_templates=strict,
        event_sink=sink,
        event_log_path=log_path,
        source=source,
    )

"""
gates.py - Tier gate for optional prompt capabilities.

The gate is the second line of tier enforcement. The canonicalizer already
applies tier defaults, but records can also arrive from the mutation
engine or be built directly, so every record is gated again before it is
assembled.

apply_gate() is total and idempotent: it never raises, and
apply_gate(apply_gate(r)) == apply_gate(r).

Usage:
    from promptstitch.compiler.gates import apply_gate

    gated = apply_gate(record, on_upgrade_prompt=events.append)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Tuple

from promptstitch.config.tier_policy import check_feature_access, required_tiers
from promptstitch.runtime._time import utc_now_iso

from .types import DEFAULT_INPUT, TIER_GATED_FIELDS, InputRecord

logger = logging.getLogger(__name__)

# Record fields governed by a feature gate, in evaluation order
CAPABILITIES: Tuple[str, ...] = TIER_GATED_FIELDS


@dataclass(frozen=True)
class UpgradeEvent:
    """A tier-gated capability that was requested but not granted."""
    feature_name: str
    required_tiers: Tuple[str, ...]
    user_tier: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature_name": self.feature_name,
            "required_tiers": list(self.required_tiers),
            "user_tier": self.user_tier,
            "timestamp": self.timestamp,
        }


UpgradeCallback = Callable[[UpgradeEvent], None]


def build_upgrade_event(feature_name: str, user_tier: str) -> UpgradeEvent:
    return UpgradeEvent(
        feature_name=feature_name,
        required_tiers=required_tiers(feature_name) or (),
        user_tier=user_tier,
        timestamp=utc_now_iso(),
    )


def apply_gate(
    record: InputRecord,
    on_upgrade_prompt: Optional[UpgradeCallback] = None,
) -> InputRecord:
    """Reset every capability the record's tier may not use.

    A field already at its default is left alone and produces no event;
    only a non-default value being cleared counts as an upgrade prompt.

    Args:
        record: Canonical InputRecord.
        on_upgrade_prompt: Called once per reset capability.

    Returns:
        The record itself when nothing was reset, otherwise a new record.
    """
    tier = record.complexity_tier
    resets: Dict[str, Any] = {}

    for feature in CAPABILITIES:
        if check_feature_access(feature, tier):
            continue
        default = getattr(DEFAULT_INPUT, feature)
        current = getattr(record, feature)
        if current == default:
            continue

        resets[feature] = default
        event = build_upgrade_event(feature, tier)
        logger.warning(
            "Feature '%s' requires tier %s; tier '%s' denied. Resetting to default.",
            feature, "/".join(event.required_tiers) or "?", tier,
        )
        if on_upgrade_prompt is not None:
            on_upgrade_prompt(event)

    if not resets:
        return record
    return replace(record, **resets)


__all__ = [
    "CAPABILITIES",
    "UpgradeEvent",
    "UpgradeCallback",
    "build_upgrade_event",
    "apply_gate",
    "check_feature_access",
]

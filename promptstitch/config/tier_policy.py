"""Tier policy registry: feature gates and usage quotas.

Provides:
1. Tier ordering (free < pro < enterprise)
2. Feature gate definitions (which tiers may use a capability)
3. Per-tier quota limits and a quota check with a pluggable usage lookup

Policy is loaded from tier_policy.yaml; the FALLBACK_* tables below are
used when the file is missing or unreadable.

Only the record-field gates (custom_instructions, multi_step_enabled,
chain_of_thought, output_length_target) are enforced inside the engine,
by the tier gate. The ADVISORY_FEATURES gates (custom_templates,
batch_processing, a_b_testing) describe product entitlements: the engine
never consults them, and callers that front the engine (an API layer or
billing service) check them with check_feature_access() before calling
select(custom_name=...), batch_generate() or generate_variants().
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

import yaml

from promptstitch.runtime._time import utc_now

logger = logging.getLogger(__name__)

# Cache for loaded policy
_policy_cache: Optional[Dict] = None
_policy_path: Optional[Path] = None

TIERS: Tuple[str, ...] = ("free", "pro", "enterprise")

FALLBACK_FEATURE_GATES: Dict[str, Tuple[str, ...]] = {
    "custom_instructions": ("pro", "enterprise"),
    "multi_step_enabled": ("pro", "enterprise"),
    "chain_of_thought": ("enterprise",),
    "output_length_target": ("pro", "enterprise"),
    "custom_templates": ("enterprise",),
    "batch_processing": ("enterprise",),
    "a_b_testing": ("enterprise",),
}

# None means unlimited
FALLBACK_TIER_QUOTAS: Dict[str, Dict[str, Optional[int]]] = {
    "free": {"prompts_per_day": 10, "max_prompt_length": 1000, "saved_prompts": 5},
    "pro": {"prompts_per_day": 100, "max_prompt_length": 5000, "saved_prompts": 50},
    "enterprise": {"prompts_per_day": None, "max_prompt_length": None, "saved_prompts": None},
}

ADVISORY_FEATURES: Tuple[str, ...] = ("custom_templates", "batch_processing", "a_b_testing")

QUOTA_TYPES: Tuple[str, ...] = ("prompts_per_day", "max_prompt_length", "saved_prompts")


def _get_policy_path() -> Path:
    """Get the path to tier_policy.yaml."""
    return Path(__file__).parent / "tier_policy.yaml"


def _load_policy() -> Dict:
    """Load and cache the tier policy from YAML.

    Returns an empty dict when the file is missing or malformed so that
    callers fall back to the built-in tables.
    """
    global _policy_cache, _policy_path

    policy_path = _get_policy_path()
    if _policy_cache is not None and _policy_path == policy_path:
        return _policy_cache

    try:
        with policy_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not load tier policy from %s: %s. Using fallback policy.", policy_path, e)
        data = {}

    _policy_cache = data
    _policy_path = policy_path
    return data


def reset_policy_cache() -> None:
    global _policy_cache, _policy_path
    _policy_cache = None
    _policy_path = None


def tier_rank(tier: str) -> int:
    """Rank a tier for comparisons (free=0, pro=1, enterprise=2).

    Raises:
        ValueError: If the tier is unknown.
    """
    try:
        return TIERS.index(tier)
    except ValueError:
        raise ValueError(f"Invalid tier: '{tier}'. Must be one of: {', '.join(TIERS)}")


def get_feature_gates() -> Dict[str, Tuple[str, ...]]:
    """Return the feature → allowed-tiers table."""
    gates = _load_policy().get("feature_gates")
    if not gates:
        return dict(FALLBACK_FEATURE_GATES)
    return {name: tuple(tiers or ()) for name, tiers in gates.items()}


def required_tiers(feature: str) -> Optional[Tuple[str, ...]]:
    """Tiers allowed to use a feature, or None if the feature is not gated."""
    return get_feature_gates().get(feature)


def check_feature_access(feature: str, tier: str) -> bool:
    """Check whether a tier may use a feature.

    Features that are not registered in the gate table are public.

    Examples:
        >>> check_feature_access("chain_of_thought", "pro")
        False
        >>> check_feature_access("custom_instructions", "pro")
        True
    """
    allowed = required_tiers(feature)
    if allowed is None:
        return True
    return tier in allowed


def get_tier_quotas() -> Dict[str, Dict[str, Optional[int]]]:
    """Return the tier → quota-type → limit table (None = unlimited)."""
    quotas = _load_policy().get("quotas")
    if not quotas:
        return {tier: dict(limits) for tier, limits in FALLBACK_TIER_QUOTAS.items()}
    return {tier: dict(limits or {}) for tier, limits in quotas.items()}


# (user_id, quota_type, date "YYYY-MM-DD") -> usage count
UsageLookup = Callable[[str, str, str], int]


def stub_usage_lookup(user_id: str, quota_type: str, day: str) -> int:
    """Usage counter placeholder; persistence lives outside the engine."""
    return 0


class QuotaManager:
    """Answers "may this user do one more X today?" for a tier.

    Usage counting is delegated to usage_lookup so the engine never owns
    persisted state.
    """

    def __init__(
        self,
        usage_lookup: Optional[UsageLookup] = None,
        quotas: Optional[Dict[str, Dict[str, Optional[int]]]] = None,
        today: Optional[Callable[[], str]] = None,
    ):
        self._usage_lookup = usage_lookup or stub_usage_lookup
        self._quotas = quotas if quotas is not None else get_tier_quotas()
        self._today = today or _today_iso

    def limit_for(self, tier: str, quota_type: str) -> Optional[int]:
        """Return the limit for a tier and quota type (None = unlimited).

        Raises:
            ValueError: If the tier or quota type is unknown.
        """
        limits = self._quotas.get(tier)
        if limits is None:
            raise ValueError(f"Invalid user tier: '{tier}'")
        if quota_type not in limits:
            raise ValueError(f"Unknown quota type: '{quota_type}'")
        return limits[quota_type]

    def check_quota(self, user_id: str, tier: str, quota_type: str) -> bool:
        """Return True if the user still has quota left for today."""
        limit = self.limit_for(tier, quota_type)
        if limit is None:
            return True
        usage = self._usage_lookup(user_id, quota_type, self._today())
        allowed = usage < limit
        if not allowed:
            logger.info(
                "Quota exhausted for user %s: %s %d/%d (tier %s)",
                user_id, quota_type, usage, limit, tier,
            )
        return allowed


def _today_iso() -> str:
    return utc_now().date().isoformat()

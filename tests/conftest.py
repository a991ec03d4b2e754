"""
Test fixtures shared across the promptstitch test suite.

Provides deterministic collaborators (counter-based version ids, a fixed
clock, a seeded RNG, an in-memory event sink) and an engine wired with
them, plus isolation of the config and tier policy caches.
"""

import random
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

_REPO_ROOT = Path(__file__).resolve().parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from promptstitch.compiler.engine import PromptEngine, reset_default_engine
from promptstitch.compiler.versioning import Versioner
from promptstitch.config import runtime_config, tier_policy
from promptstitch.config.runtime_config import EngineConfig
from promptstitch.runtime.events import RecordingEventSink

FIXED_NOW = datetime(2026, 3, 14, 9, 26, 53, tzinfo=timezone.utc)

_ENV_VARS = (
    "PROMPTSTITCH_CONFIG",
    "PROMPTSTITCH_STRICT_TEMPLATES",
    "PROMPTSTITCH_EVENT_SINK",
    "PROMPTSTITCH_EVENT_LOG",
    "PROMPTSTITCH_TEMPLATE_VERSION",
)


# ============================================================================
# Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Clear PROMPTSTITCH_* overrides and module-level caches around each test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    runtime_config.reset_config()
    tier_policy.reset_policy_cache()
    reset_default_engine()
    yield
    runtime_config.reset_config()
    tier_policy.reset_policy_cache()
    reset_default_engine()


# ============================================================================
# Deterministic collaborators
# ============================================================================


class CounterIds:
    """Callable id factory yielding ver-0001, ver-0002, ..."""

    def __init__(self, prefix: str = "ver"):
        self.prefix = prefix
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"{self.prefix}-{self.count:04d}"


@pytest.fixture
def counter_ids():
    return CounterIds()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def seeded_rng():
    return random.Random(1234)


@pytest.fixture
def sink():
    return RecordingEventSink()


@pytest.fixture
def versioner(counter_ids, fixed_clock):
    return Versioner(id_factory=counter_ids, clock=fixed_clock)


@pytest.fixture
def engine(sink, versioner, seeded_rng):
    """PromptEngine with default config and deterministic collaborators."""
    return PromptEngine(
        config=EngineConfig(),
        event_sink=sink,
        versioner=versioner,
        rng=seeded_rng,
    )


# ============================================================================
# Sample inputs
# ============================================================================


@pytest.fixture
def enterprise_input():
    return {
        "intent_type": "analyze",
        "task_domain": "technical",
        "output_type": "report",
        "tone": "technical",
        "role": "",
        "task_description": "review the incident timeline and identify root causes",
        "context_provided": "Outage on 2026-02-01 affected the payments API.",
        "constraints": ["Reference log timestamps", "Keep findings factual"],
        "detail_level": "comprehensive",
        "target_audience": "site reliability engineers",
        "complexity_tier": "enterprise",
        "custom_instructions": "Flag any gaps in monitoring.",
        "multi_step_enabled": True,
        "chain_of_thought": True,
        "output_length_target": 800,
    }

"""
types.py - Dataclasses for the prompt compilation pipeline.

These types are the contracts that flow between the canonicalizer, tier
gate, assembler, versioner and mutation engine. Records are frozen: every
stage returns a new value instead of editing its input.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class IntentType(Enum):
    """What the user wants the model to do."""
    CREATE = "create"
    ANALYZE = "analyze"
    TRANSFORM = "transform"
    EXTRACT = "extract"
    PLAN = "plan"
    SOLVE = "solve"


class TaskDomain(Enum):
    """Subject area of the task."""
    BUSINESS = "business"
    CREATIVE = "creative"
    TECHNICAL = "technical"
    EDUCATIONAL = "educational"
    MARKETING = "marketing"
    PERSONAL = "personal"


class OutputType(Enum):
    """Shape of the response the model should produce."""
    TEXT = "text"
    LIST = "list"
    TABLE = "table"
    CODE = "code"
    OUTLINE = "outline"
    JSON = "json"
    MARKDOWN = "markdown"
    REPORT = "report"


class Tone(Enum):
    """Voice the model should write in."""
    PROFESSIONAL = "professional"
    CASUAL = "casual"
    TECHNICAL = "technical"
    FRIENDLY = "friendly"
    AUTHORITATIVE = "authoritative"
    CREATIVE = "creative"
    NEUTRAL = "neutral"


class DetailLevel(Enum):
    BRIEF = "brief"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"


class ComplexityTier(Enum):
    """Access tier controlling which optional capabilities are honored."""
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class MutationType(Enum):
    """Operators accepted by the mutation engine."""
    TONE_SHIFT = "tone_shift"
    DETAIL_EXPANSION = "detail_expansion"
    DETAIL_REDUCTION = "detail_reduction"
    FORMAT_TRANSFORM = "format_transform"
    CONSTRAINT_ADD = "constraint_add"
    CONSTRAINT_REMOVE = "constraint_remove"
    ROLE_REFINEMENT = "role_refinement"


# Enumerated InputRecord fields and their closed vocabularies
ENUM_FIELDS: Dict[str, type] = {
    "intent_type": IntentType,
    "task_domain": TaskDomain,
    "output_type": OutputType,
    "tone": Tone,
    "detail_level": DetailLevel,
    "complexity_tier": ComplexityTier,
}

DEFAULT_ROLE = "Expert Assistant"
DEFAULT_AUDIENCE = "general audience"


# =============================================================================
# InputRecord
# =============================================================================


@dataclass(frozen=True)
class InputRecord:
    """The canonical unit of work.

    Enumerated fields hold the plain string value of their vocabulary
    (e.g. "plan", not IntentType.PLAN) so that vocabularies extended at
    runtime by a VocabularyRegistry flow through unchanged.

    Field declaration order is part of the content hash contract; do not
    reorder.
    """
    # Primary
    intent_type: str = IntentType.CREATE.value
    task_domain: str = TaskDomain.BUSINESS.value
    output_type: str = OutputType.TEXT.value
    tone: str = Tone.PROFESSIONAL.value
    role: str = DEFAULT_ROLE  # "" means derive from the role matrix
    task_description: str = ""

    # Secondary
    context_provided: str = ""
    constraints: Tuple[str, ...] = ()
    examples_included: bool = False
    example_text: str = ""
    detail_level: str = DetailLevel.STANDARD.value
    target_audience: str = DEFAULT_AUDIENCE

    # Tier-gated
    complexity_tier: str = ComplexityTier.FREE.value
    custom_instructions: str = ""
    multi_step_enabled: bool = False
    chain_of_thought: bool = False
    output_length_target: Optional[int] = None


DEFAULT_INPUT = InputRecord()

INPUT_FIELD_NAMES: Tuple[str, ...] = tuple(f.name for f in fields(InputRecord))

# Fields reset by the tier gate, in gate evaluation order
TIER_GATED_FIELDS: Tuple[str, ...] = (
    "custom_instructions",
    "multi_step_enabled",
    "chain_of_thought",
    "output_length_target",
)


def input_record_to_dict(record: InputRecord) -> Dict[str, Any]:
    """Convert an InputRecord to a plain dict (lists instead of tuples)."""
    data: Dict[str, Any] = {}
    for name in INPUT_FIELD_NAMES:
        value = getattr(record, name)
        data[name] = list(value) if isinstance(value, tuple) else value
    return data


def input_record_from_dict(data: Dict[str, Any]) -> InputRecord:
    """Build an InputRecord from an already-canonical dict.

    No validation is performed; use canonicalize() for untrusted input.
    Unknown keys are ignored.
    """
    values = {name: data[name] for name in INPUT_FIELD_NAMES if name in data}
    if "constraints" in values:
        values["constraints"] = tuple(values["constraints"] or ())
    return InputRecord(**values)


# =============================================================================
# Versioning and lineage
# =============================================================================


@dataclass(frozen=True)
class VersionMetadata:
    """Identity record for one compiled InputRecord.

    version_id is random per call; input_hash is a pure function of the
    record's field values. content_id is the hash-derived identity used
    for lineage links.
    """
    version_id: str
    created_at: str  # ISO timestamp
    input_hash: str  # SHA-256 hex
    template_version: str
    engine_version: str
    parent_version_id: Optional[str] = None

    @property
    def content_id(self) -> str:
        return content_id_for_hash(self.input_hash)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "version_id": self.version_id,
            "created_at": self.created_at,
            "input_hash": self.input_hash,
            "content_id": self.content_id,
            "template_version": self.template_version,
            "engine_version": self.engine_version,
        }
        if self.parent_version_id is not None:
            data["parent_version_id"] = self.parent_version_id
        return data


def content_id_for_hash(input_hash: str) -> str:
    """Derive the short content identity ("v_" + 16 hex chars) from a hash."""
    return f"v_{input_hash[:16]}"


@dataclass(frozen=True)
class MutationRecord:
    """Lineage link from a derived record back to its parent."""
    parent_version_id: str  # parent's content_id
    parent_input_hash: str
    mutation_type: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parent_version_id": self.parent_version_id,
            "parent_input_hash": self.parent_input_hash,
            "mutation_type": self.mutation_type,
            "parameters": dict(self.parameters),
            "timestamp": self.timestamp,
        }


# =============================================================================
# Pipeline output
# =============================================================================


@dataclass(frozen=True)
class PromptOutput:
    """Externally visible result bundle."""
    prompt: str
    metadata: VersionMetadata
    input_used: InputRecord

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "metadata": self.metadata.to_dict(),
            "input_used": input_record_to_dict(self.input_used),
        }


@dataclass(frozen=True)
class PromptVariant:
    """A sibling prompt derived from a base record by one mutation."""
    label: str  # "V1", "V2", ...
    output: PromptOutput
    lineage: MutationRecord

    @property
    def mutation_type(self) -> str:
        return self.lineage.mutation_type

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "lineage": self.lineage.to_dict(),
            **self.output.to_dict(),
        }


@dataclass(frozen=True)
class BatchResult:
    """One successfully compiled batch item."""
    input_id: str
    prompt: str
    metadata: VersionMetadata
    input_used: InputRecord

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_id": self.input_id,
            "prompt": self.prompt,
            "metadata": self.metadata.to_dict(),
            "input_used": input_record_to_dict(self.input_used),
        }


@dataclass(frozen=True)
class ItemError:
    """A batch item or variant that failed without aborting its siblings."""
    item_id: str
    error_type: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"item_id": self.item_id, "error_type": self.error_type, "message": self.message}


@dataclass
class BatchReport:
    """Partial-result container for batch generation."""
    results: List[BatchResult] = field(default_factory=list)
    errors: List[ItemError] = field(default_factory=list)

    def __iter__(self) -> Iterator[BatchResult]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class VariantSet:
    """Sibling variants of one base record plus any per-variant failures."""
    parent_version_id: str
    variants: List[PromptVariant] = field(default_factory=list)
    errors: List[ItemError] = field(default_factory=list)

    def __iter__(self) -> Iterator[PromptVariant]:
        return iter(self.variants)

    def __len__(self) -> int:
        return len(self.variants)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parent_version_id": self.parent_version_id,
            "variants": [v.to_dict() for v in self.variants],
            "errors": [e.to_dict() for e in self.errors],
        }

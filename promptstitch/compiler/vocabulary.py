"""
vocabulary.py - Closed vocabularies, lookup tables, and the vocabulary registry.

A Vocabulary is an immutable snapshot of everything the pipeline looks up
by key:

- the allowed values of each enumerated InputRecord field
- the (intent, domain) → persona role matrix
- the per-output-type format instructions and their comprehensive
  enhancements
- tone descriptors

The built-in snapshot comes from the enums in types.py. Operators who
need more vocabulary construct a VocabularyRegistry and pass it to the
engine; writes swap in a new snapshot under a lock, so a request that
already took `registry.current` never sees a half-applied change.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, replace
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from promptstitch.errors import RegistryValidationError
from promptstitch.runtime._time import utc_now_iso

from .types import DEFAULT_INPUT, DEFAULT_ROLE, ENUM_FIELDS

logger = logging.getLogger(__name__)


ROLE_MAP: Dict[str, Dict[str, str]] = {
    "create": {
        "business": "Expert Business Content Creator",
        "creative": "Creative Writing Specialist",
        "technical": "Technical Documentation Writer",
        "educational": "Educational Content Developer",
        "marketing": "Marketing Copywriter",
        "personal": "Personal Writing Assistant",
    },
    "analyze": {
        "business": "Business Analyst",
        "creative": "Creative Critic and Analyst",
        "technical": "Technical Systems Analyst",
        "educational": "Learning Assessment Specialist",
        "marketing": "Marketing Data Analyst",
        "personal": "Personal Development Coach",
    },
    "transform": {
        "business": "Business Process Optimizer",
        "creative": "Content Transformation Specialist",
        "technical": "Code Refactoring Expert",
        "educational": "Curriculum Adaptation Specialist",
        "marketing": "Brand Messaging Strategist",
        "personal": "Lifestyle Change Consultant",
    },
    "extract": {
        "business": "Business Intelligence Specialist",
        "creative": "Content Extraction Expert",
        "technical": "Data Mining Engineer",
        "educational": "Key Concept Identifier",
        "marketing": "Market Research Analyst",
        "personal": "Information Organizer",
    },
    "plan": {
        "business": "Strategic Business Planner",
        "creative": "Creative Project Manager",
        "technical": "Technical Architect",
        "educational": "Learning Path Designer",
        "marketing": "Campaign Strategy Director",
        "personal": "Goal Setting Coach",
    },
    "solve": {
        "business": "Business Problem Solver",
        "creative": "Creative Solutions Consultant",
        "technical": "Technical Troubleshooting Expert",
        "educational": "Learning Challenge Specialist",
        "marketing": "Marketing Challenge Solver",
        "personal": "Personal Problem-Solving Coach",
    },
}

OUTPUT_FORMAT_MAP: Dict[str, str] = {
    "text": "Provide your response as clear, well-structured paragraphs.",
    "list": "Format your response as a numbered or bulleted list with clear hierarchy.",
    "table": "Present information in a structured table format with appropriate headers.",
    "code": "Output clean, well-commented code with proper syntax and indentation.",
    "outline": "Create a hierarchical outline with main points and subpoints.",
    "json": "Return valid JSON with proper structure and data types.",
    "markdown": "Use markdown formatting including headers, lists, and emphasis where appropriate.",
    "report": "Structure as a formal report with executive summary, main sections, and conclusion.",
}

# Appended to the format instruction when detail_level is comprehensive
FORMAT_ENHANCEMENTS: Dict[str, str] = {
    "text": "Include section headers to organize content.",
    "list": "Provide brief explanations for each item.",
    "table": "Include a summary row or column with totals/insights.",
    "code": "Add inline documentation and usage examples.",
    "outline": "Expand to at least 3 levels of depth.",
    "json": "Include descriptive keys and nested structures where relevant.",
    "markdown": "Use advanced markdown features like tables and code blocks.",
    "report": "Add methodology section and recommendations.",
}

TONE_DESCRIPTORS: Dict[str, str] = {
    "professional": "formal, clear, businesslike",
    "casual": "conversational, relaxed, approachable",
    "technical": "precise, jargon-appropriate, detailed",
    "friendly": "warm, helpful, encouraging",
    "authoritative": "confident, commanding, expert",
    "creative": "imaginative, expressive, unconventional",
    "neutral": "balanced, objective, impartial",
}

_ROLE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-']+$")


def _freeze(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, eq=False)
class Vocabulary:
    """Immutable lookup snapshot used by one compilation request."""
    allowed: Mapping[str, Tuple[str, ...]]
    role_map: Mapping[str, Mapping[str, str]]
    output_formats: Mapping[str, str]
    format_enhancements: Mapping[str, str]
    tone_descriptors: Mapping[str, str]
    version: int = 1

    def allowed_values(self, field_name: str) -> Tuple[str, ...]:
        return self.allowed.get(field_name, ())

    def default_for(self, field_name: str) -> str:
        return getattr(DEFAULT_INPUT, field_name)

    def is_allowed(self, field_name: str, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        return value.strip().lower() in self.allowed_values(field_name)

    def coerce(self, field_name: str, value: Any) -> Tuple[str, bool]:
        """Map a raw enum value to its canonical form.

        Membership is case-insensitive and ignores surrounding whitespace;
        the returned value is lower-cased and trimmed. Anything outside the
        vocabulary becomes the field default.

        Returns:
            (canonical_value, corrected) where corrected is True when the
            default was substituted.
        """
        if self.is_allowed(field_name, value):
            return value.strip().lower(), False
        return self.default_for(field_name), True

    def role_for(self, intent_type: str, task_domain: str) -> str:
        """Persona for an (intent, domain) pair, or the default role."""
        return self.role_map.get(intent_type, {}).get(task_domain, DEFAULT_ROLE)

    def format_instruction(self, output_type: str, comprehensive: bool = False) -> str:
        base = self.output_formats.get(output_type)
        if base is None:
            output_type = "text"
            base = self.output_formats["text"]
        if comprehensive:
            extension = self.format_enhancements.get(output_type, "")
            if extension:
                return f"{base} {extension}"
        return base

    def describe_tone(self, tone: str) -> str:
        return self.tone_descriptors.get(tone, "")


@lru_cache(maxsize=1)
def builtin_vocabulary() -> Vocabulary:
    """The vocabulary defined by the enums and tables in this package."""
    return Vocabulary(
        allowed=_freeze({
            name: tuple(member.value for member in enum_cls)
            for name, enum_cls in ENUM_FIELDS.items()
        }),
        role_map=_freeze({intent: _freeze(domains) for intent, domains in ROLE_MAP.items()}),
        output_formats=_freeze(OUTPUT_FORMAT_MAP),
        format_enhancements=_freeze(FORMAT_ENHANCEMENTS),
        tone_descriptors=_freeze(TONE_DESCRIPTORS),
    )


# =============================================================================
# Registry
# =============================================================================


@dataclass(frozen=True)
class VocabularyChange:
    """One accepted registry write."""
    kind: str  # "role" | "tone" | "output_type"
    key: str
    value: str
    version: int
    timestamp: str


class VocabularyRegistry:
    """Caller-owned, append-only vocabulary extension point.

    Usage:
        registry = VocabularyRegistry()
        registry.add_tone("playful", "light-hearted, witty, upbeat")
        engine = PromptEngine(vocabulary=registry)
    """

    def __init__(self, base: Optional[Vocabulary] = None):
        self._current = base or builtin_vocabulary()
        self._lock = threading.Lock()
        self._changes: List[VocabularyChange] = []

    @property
    def current(self) -> Vocabulary:
        return self._current

    @property
    def version(self) -> int:
        return self._current.version

    @property
    def changes(self) -> Tuple[VocabularyChange, ...]:
        return tuple(self._changes)

    def add_role(self, intent_type: str, task_domain: str, role_name: str) -> None:
        """Set the persona for an (intent, domain) pair.

        Raises:
            RegistryValidationError: If the keys are unknown or the role
                name is out of bounds or contains invalid characters.
        """
        with self._lock:
            vocab = self._current
            if intent_type not in vocab.role_map:
                raise RegistryValidationError(
                    "role registry",
                    f"Invalid intent_type: '{intent_type}'. "
                    f"Must be one of: {', '.join(vocab.role_map.keys())}",
                )
            if task_domain not in vocab.allowed_values("task_domain"):
                raise RegistryValidationError("role registry", f"Invalid task_domain: '{task_domain}'")
            if not 3 <= len(role_name) <= 100:
                raise RegistryValidationError("role registry", "Role name must be between 3 and 100 characters.")
            if not _ROLE_NAME_PATTERN.match(role_name):
                raise RegistryValidationError(
                    "role registry",
                    "Role name contains invalid characters. Only letters, numbers, "
                    "spaces, hyphens, and apostrophes are allowed.",
                )

            role_map = {intent: dict(domains) for intent, domains in vocab.role_map.items()}
            role_map[intent_type][task_domain] = role_name
            self._commit(
                replace(vocab, role_map=_freeze({k: _freeze(v) for k, v in role_map.items()})),
                "role",
                f"{intent_type}/{task_domain}",
                role_name,
            )

    def add_tone(self, tone_name: str, descriptor: str) -> None:
        """Register a new tone.

        Raises:
            RegistryValidationError: If the tone exists, is not lowercase,
                or the name or descriptor is out of bounds.
        """
        with self._lock:
            vocab = self._current
            normalized = tone_name.lower().strip()
            if normalized in vocab.allowed_values("tone"):
                raise RegistryValidationError("tone registry", f"Tone '{normalized}' already exists in the registry.")
            if not 3 <= len(normalized) <= 20:
                raise RegistryValidationError("tone registry", "Tone name must be between 3 and 20 characters.")
            if tone_name != normalized:
                raise RegistryValidationError("tone registry", "Tone name must be provided in lowercase.")
            if not 5 <= len(descriptor) <= 100:
                raise RegistryValidationError("tone registry", "Tone descriptor must be between 5 and 100 characters.")

            allowed = dict(vocab.allowed)
            allowed["tone"] = vocab.allowed_values("tone") + (tone_name,)
            descriptors = dict(vocab.tone_descriptors)
            descriptors[tone_name] = descriptor
            self._commit(
                replace(vocab, allowed=_freeze(allowed), tone_descriptors=_freeze(descriptors)),
                "tone",
                tone_name,
                descriptor,
            )

    def add_output_type(self, type_name: str, format_spec: str, enhancement: str = "") -> None:
        """Register a new output type with its format instruction.

        Raises:
            RegistryValidationError: If the type exists, is not a lowercase
                single token of 3-20 chars, or the texts are out of bounds.
        """
        with self._lock:
            vocab = self._current
            normalized = type_name.lower().strip()
            if normalized in vocab.allowed_values("output_type"):
                raise RegistryValidationError("output type registry", f"Output type '{normalized}' already exists.")
            if not 3 <= len(normalized) <= 20:
                raise RegistryValidationError(
                    "output type registry", "Output type name must be between 3 and 20 characters."
                )
            if re.search(r"\s", normalized):
                raise RegistryValidationError("output type registry", "Output type name cannot contain spaces.")
            if type_name != normalized:
                raise RegistryValidationError("output type registry", "Output type name must be provided in lowercase.")
            if not 10 <= len(format_spec) <= 500:
                raise RegistryValidationError(
                    "output type registry", "Format specification must be between 10 and 500 characters."
                )
            if len(enhancement) > 500:
                raise RegistryValidationError("output type registry", "Enhancement rule cannot exceed 500 characters.")

            allowed = dict(vocab.allowed)
            allowed["output_type"] = vocab.allowed_values("output_type") + (type_name,)
            formats = dict(vocab.output_formats)
            formats[type_name] = format_spec
            enhancements = dict(vocab.format_enhancements)
            if enhancement:
                enhancements[type_name] = enhancement
            self._commit(
                replace(
                    vocab,
                    allowed=_freeze(allowed),
                    output_formats=_freeze(formats),
                    format_enhancements=_freeze(enhancements),
                ),
                "output_type",
                type_name,
                format_spec,
            )

    def _commit(self, vocab: Vocabulary, kind: str, key: str, value: str) -> None:
        # Caller holds self._lock
        new_version = self._current.version + 1
        self._current = replace(vocab, version=new_version)
        self._changes.append(
            VocabularyChange(kind=kind, key=key, value=value, version=new_version, timestamp=utc_now_iso())
        )
        logger.info("Vocabulary %s '%s' registered (v%d)", kind, key, new_version)


def resolve_vocabulary(source: Any = None) -> Vocabulary:
    """Accept a Vocabulary, a VocabularyRegistry, or None (built-in)."""
    if source is None:
        return builtin_vocabulary()
    if isinstance(source, VocabularyRegistry):
        return source.current
    return source

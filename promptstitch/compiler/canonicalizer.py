"""
canonicalizer.py - Turn untrusted partial input into a canonical InputRecord.

The canonicalizer is the pipeline's only rejecting stage, and it rejects
exactly one thing: a missing or blank task description. Every other
problem is corrected to a documented default and reported:

1. Merge the partial input over DEFAULT_INPUT (None counts as absent)
2. Check enumerated fields against the vocabulary (case-insensitive)
3. Enforce length bounds and parse the numeric length target
4. Bound and deduplicate the constraints list
5. Apply tier defaults (free clears every tier-gated field, pro clears
   chain_of_thought)
6. Normalize casing: enums lower-case, role and task description
   sentence-cased, free text trimmed

Each correction is logged and handed to the optional on_correction
callback as a FallbackWarning. canonicalize() is a fixed point on its own
output.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from promptstitch.errors import MissingRequiredFieldError

from .types import (
    DEFAULT_INPUT,
    ENUM_FIELDS,
    INPUT_FIELD_NAMES,
    TIER_GATED_FIELDS,
    InputRecord,
    input_record_to_dict,
)
from .vocabulary import Vocabulary, VocabularyRegistry, resolve_vocabulary

logger = logging.getLogger(__name__)

TASK_DESCRIPTION_MIN = 10
TASK_DESCRIPTION_MAX = 500
ROLE_MIN = 3
ROLE_MAX = 100
CONSTRAINT_MIN = 5
CONSTRAINT_MAX = 200
CONSTRAINTS_MAX_ITEMS = 10
OUTPUT_LENGTH_MIN = 50
OUTPUT_LENGTH_MAX = 5000

# Free-text fields truncated at a cap
TEXT_LIMITS: Dict[str, int] = {
    "context_provided": 1000,
    "example_text": 2000,
    "target_audience": 100,
    "custom_instructions": 500,
}

BOOLEAN_FIELDS = ("examples_included", "multi_step_enabled", "chain_of_thought")

# Fields reset per tier before the record is considered canonical
TIER_RESETS: Dict[str, tuple] = {
    "free": TIER_GATED_FIELDS,
    "pro": ("chain_of_thought",),
    "enterprise": (),
}

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass(frozen=True)
class FallbackWarning:
    """A field whose value was replaced during canonicalization."""
    field: str
    invalid_value: Any
    corrected_value: Any
    reason: str  # "vocabulary" | "type" | "length" | "range" | "constraint" | "tier_restricted"


CorrectionCallback = Callable[[FallbackWarning], None]
PartialInput = Union[Mapping[str, Any], InputRecord]


def _preview(value: Any, limit: int = 60) -> str:
    text = repr(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def sentence_case(value: str) -> str:
    """Upper-case the first character, leave the rest untouched."""
    return value[:1].upper() + value[1:]


class Canonicalizer:
    """Validates, corrects and normalizes raw input.

    Usage:
        canon = Canonicalizer(on_correction=warnings.append)
        record = canon.canonicalize({"task_description": "Summarize the Q3 report"})
    """

    def __init__(
        self,
        vocabulary: Optional[Union[Vocabulary, VocabularyRegistry]] = None,
        on_correction: Optional[CorrectionCallback] = None,
    ):
        self._vocabulary_source = vocabulary
        self._on_correction = on_correction

    def canonicalize(self, partial: PartialInput) -> InputRecord:
        """Produce a complete, schema-valid InputRecord.

        Args:
            partial: A mapping of InputRecord field names to raw values,
                or an InputRecord (re-canonicalized).

        Returns:
            Canonical InputRecord.

        Raises:
            MissingRequiredFieldError: If task_description is absent,
                not a string, or blank after trimming.
        """
        vocab = resolve_vocabulary(self._vocabulary_source)
        if isinstance(partial, InputRecord):
            partial = input_record_to_dict(partial)

        raw_task = partial.get("task_description")
        if not isinstance(raw_task, str) or not raw_task.strip():
            raise MissingRequiredFieldError("task_description", "Task description required")

        # 1. Merge over defaults
        values = input_record_to_dict(DEFAULT_INPUT)
        for key, value in partial.items():
            if key in INPUT_FIELD_NAMES:
                if value is not None:
                    values[key] = value
            else:
                logger.debug("Ignoring unknown input key '%s'", key)

        # 2. Enumerated fields (membership check is case-insensitive)
        for name in ENUM_FIELDS:
            raw = values[name]
            canonical, corrected = vocab.coerce(name, raw)
            if corrected:
                self._correct(name, raw, canonical, "vocabulary")
            values[name] = canonical

        # 3. Length bounds, booleans, numeric target
        values["task_description"] = self._normalize_task(raw_task)
        values["role"] = self._normalize_role(values["role"])
        for name, limit in TEXT_LIMITS.items():
            values[name] = self._normalize_text(name, values[name], limit)
        for name in BOOLEAN_FIELDS:
            values[name] = self._coerce_bool(name, values[name])
        values["output_length_target"] = self._coerce_length_target(values["output_length_target"])

        if values["examples_included"] and not values["example_text"]:
            logger.warning("examples_included is true but example_text is empty.")

        # 4. Constraints
        values["constraints"] = tuple(self._normalize_constraints(values["constraints"]))

        # 5. Tier defaults
        for name in TIER_RESETS.get(values["complexity_tier"], ()):
            default = getattr(DEFAULT_INPUT, name)
            if values[name] != default:
                self._correct(name, values[name], default, "tier_restricted")
                values[name] = default

        return InputRecord(**values)

    # -------------------------------------------------------------------------
    # Field normalizers
    # -------------------------------------------------------------------------

    def _normalize_task(self, value: str) -> str:
        text = sentence_case(value.strip())
        if len(text) > TASK_DESCRIPTION_MAX:
            truncated = text[:TASK_DESCRIPTION_MAX].rstrip()
            self._correct("task_description", text, truncated, "length")
            text = truncated
        if len(text) < TASK_DESCRIPTION_MIN:
            logger.warning(
                "Task description is %d chars (recommended minimum %d): %s",
                len(text), TASK_DESCRIPTION_MIN, _preview(text),
            )
        return text

    def _normalize_role(self, value: Any) -> str:
        if not isinstance(value, str):
            self._correct("role", value, DEFAULT_INPUT.role, "type")
            return DEFAULT_INPUT.role
        text = value.strip()
        if not text:
            # Blank role: derived from the role matrix at assembly time
            return ""
        text = sentence_case(text)
        if not ROLE_MIN <= len(text) <= ROLE_MAX:
            self._correct("role", text, DEFAULT_INPUT.role, "length")
            return DEFAULT_INPUT.role
        return text

    def _normalize_text(self, name: str, value: Any, limit: int) -> str:
        if not isinstance(value, str):
            default = getattr(DEFAULT_INPUT, name)
            self._correct(name, value, default, "type")
            return default
        text = value.strip()
        if len(text) > limit:
            truncated = text[:limit].rstrip()
            self._correct(name, text, truncated, "length")
            text = truncated
        return text

    def _coerce_bool(self, name: str, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value != 0
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        default = getattr(DEFAULT_INPUT, name)
        self._correct(name, value, default, "type")
        return default

    def _coerce_length_target(self, value: Any) -> Optional[int]:
        if value is None:
            return None
        number: Optional[int] = None
        if isinstance(value, bool):
            number = None
        elif isinstance(value, int):
            number = value
        elif isinstance(value, float) and math.isfinite(value):
            number = int(value)
        elif isinstance(value, str):
            match = _LEADING_INT.match(value)
            if match:
                number = int(match.group(1))
        if number is None or not OUTPUT_LENGTH_MIN <= number <= OUTPUT_LENGTH_MAX:
            self._correct("output_length_target", value, None, "range")
            return None
        return number

    def _normalize_constraints(self, value: Any) -> List[str]:
        if isinstance(value, str):
            items: List[Any] = [value]
        elif isinstance(value, (list, tuple)):
            items = list(value)
        else:
            self._correct("constraints", value, [], "type")
            return []

        result: List[str] = []
        for item in items:
            if not isinstance(item, str):
                self._correct("constraints", item, None, "type")
                continue
            text = item.strip()
            if not CONSTRAINT_MIN <= len(text) <= CONSTRAINT_MAX:
                self._correct("constraints", text, None, "constraint")
                continue
            if text in result:
                self._correct("constraints", text, None, "constraint")
                continue
            if len(result) >= CONSTRAINTS_MAX_ITEMS:
                self._correct("constraints", text, None, "constraint")
                continue
            result.append(text)
        return result

    def _correct(self, field_name: str, invalid: Any, corrected: Any, reason: str) -> None:
        warning = FallbackWarning(
            field=field_name,
            invalid_value=invalid,
            corrected_value=corrected,
            reason=reason,
        )
        logger.warning(
            "[Fallback] Field '%s' had invalid value %s (%s). Corrected to %s.",
            field_name, _preview(invalid), reason, _preview(corrected),
        )
        if self._on_correction is not None:
            self._on_correction(warning)


def canonicalize(
    partial: PartialInput,
    vocabulary: Optional[Union[Vocabulary, VocabularyRegistry]] = None,
    on_correction: Optional[CorrectionCallback] = None,
) -> InputRecord:
    """Canonicalize raw input (convenience function).

    Raises:
        MissingRequiredFieldError: If task_description is absent or blank.
    """
    return Canonicalizer(vocabulary, on_correction).canonicalize(partial)


def collect_corrections(
    partial: PartialInput,
    vocabulary: Optional[Union[Vocabulary, VocabularyRegistry]] = None,
) -> "tuple[InputRecord, List[FallbackWarning]]":
    """Canonicalize and return the record together with every correction made."""
    warnings: List[FallbackWarning] = []
    record = Canonicalizer(vocabulary, warnings.append).canonicalize(partial)
    return record, warnings

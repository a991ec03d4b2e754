"""
mutation.py - Mutation operators and A/B variant generation.

A mutation derives a new InputRecord from a parent by changing exactly one
aspect of it, and returns a MutationRecord linking the child back to the
parent's content identity. Operators:

    tone_shift         {"new_tone": str}
    detail_expansion   detail_level -> comprehensive
    detail_reduction   detail_level -> brief
    format_transform   {"new_output_type": str}
    constraint_add     {"constraint": str}
    constraint_remove  {"constraint_index": int}
    role_refinement    {"specialization": str}

Parameters that would produce an invalid record leave it unchanged (with a
warning); only an unknown operator name raises. Every mutated record is
passed back through the tier gate.

VariantGenerator draws several mutations of one base record, renders and
versions each, and collects per-variant failures instead of raising.
"""

from __future__ import annotations

import logging
import random
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from promptstitch.errors import PromptStitchError, UnsupportedOperatorError
from promptstitch.runtime._time import datetime_to_iso, utc_now

from .blocks import resolve_role
from .canonicalizer import (
    CONSTRAINT_MAX,
    CONSTRAINT_MIN,
    CONSTRAINTS_MAX_ITEMS,
    ROLE_MAX,
)
from .gates import UpgradeCallback, apply_gate
from .templates import TemplateSelector
from .types import (
    DetailLevel,
    InputRecord,
    ItemError,
    MutationRecord,
    MutationType,
    PromptOutput,
    PromptVariant,
    VariantSet,
    content_id_for_hash,
)
from .versioning import Versioner, hash_input
from .vocabulary import Vocabulary, VocabularyRegistry, resolve_vocabulary

logger = logging.getLogger(__name__)

SUPPORTED_OPERATORS: Tuple[str, ...] = tuple(m.value for m in MutationType)

DEFAULT_VARIANT_POOL: Tuple[str, ...] = (
    MutationType.TONE_SHIFT.value,
    MutationType.DETAIL_EXPANSION.value,
    MutationType.DETAIL_REDUCTION.value,
    MutationType.FORMAT_TRANSFORM.value,
)

# Parameter stock for operators whose values are not drawn from a vocabulary
STOCK_CONSTRAINTS: Tuple[str, ...] = (
    "Use plain language",
    "Cite sources where possible",
    "Avoid jargon",
    "Include one concrete example",
)
STOCK_SPECIALIZATIONS: Tuple[str, ...] = (
    "Quality Assurance",
    "Risk Management",
    "User Experience",
    "Data Analysis",
)


def _noop(operator: str, reason: str, record: InputRecord) -> InputRecord:
    logger.warning("Mutation '%s' skipped: %s. Record left unchanged.", operator, reason)
    return record


def _tone_shift(record: InputRecord, params: Mapping[str, Any], vocab: Vocabulary) -> InputRecord:
    new_tone = params.get("new_tone")
    if not vocab.is_allowed("tone", new_tone):
        return _noop("tone_shift", f"unknown tone {new_tone!r}", record)
    return replace(record, tone=new_tone.strip().lower())


def _format_transform(record: InputRecord, params: Mapping[str, Any], vocab: Vocabulary) -> InputRecord:
    new_type = params.get("new_output_type")
    if not vocab.is_allowed("output_type", new_type):
        return _noop("format_transform", f"unknown output type {new_type!r}", record)
    return replace(record, output_type=new_type.strip().lower())


def _detail_expansion(record: InputRecord, params: Mapping[str, Any], vocab: Vocabulary) -> InputRecord:
    return replace(record, detail_level=DetailLevel.COMPREHENSIVE.value)


def _detail_reduction(record: InputRecord, params: Mapping[str, Any], vocab: Vocabulary) -> InputRecord:
    return replace(record, detail_level=DetailLevel.BRIEF.value)


def _constraint_add(record: InputRecord, params: Mapping[str, Any], vocab: Vocabulary) -> InputRecord:
    constraint = params.get("constraint")
    if not isinstance(constraint, str):
        return _noop("constraint_add", "constraint must be a string", record)
    text = constraint.strip()
    if not CONSTRAINT_MIN <= len(text) <= CONSTRAINT_MAX:
        return _noop("constraint_add", f"constraint length {len(text)} out of bounds", record)
    if text in record.constraints:
        return _noop("constraint_add", "duplicate constraint", record)
    if len(record.constraints) >= CONSTRAINTS_MAX_ITEMS:
        return _noop("constraint_add", f"already {CONSTRAINTS_MAX_ITEMS} constraints", record)
    return replace(record, constraints=record.constraints + (text,))


def _constraint_remove(record: InputRecord, params: Mapping[str, Any], vocab: Vocabulary) -> InputRecord:
    index = params.get("constraint_index")
    if not isinstance(index, int) or isinstance(index, bool):
        return _noop("constraint_remove", f"invalid index {index!r}", record)
    size = len(record.constraints)
    if not -size <= index < size:
        return _noop("constraint_remove", f"index {index} out of range for {size} constraints", record)
    remaining = list(record.constraints)
    del remaining[index]
    return replace(record, constraints=tuple(remaining))


def _role_refinement(record: InputRecord, params: Mapping[str, Any], vocab: Vocabulary) -> InputRecord:
    specialization = params.get("specialization")
    if not isinstance(specialization, str) or not specialization.strip():
        return _noop("role_refinement", "specialization is required", record)
    refined = f"{resolve_role(record, vocab)} with a focus on {specialization.strip()}"
    if len(refined) > ROLE_MAX:
        return _noop("role_refinement", f"refined role exceeds {ROLE_MAX} chars", record)
    return replace(record, role=refined)


_OPERATORS: Dict[str, Callable[[InputRecord, Mapping[str, Any], Vocabulary], InputRecord]] = {
    MutationType.TONE_SHIFT.value: _tone_shift,
    MutationType.DETAIL_EXPANSION.value: _detail_expansion,
    MutationType.DETAIL_REDUCTION.value: _detail_reduction,
    MutationType.FORMAT_TRANSFORM.value: _format_transform,
    MutationType.CONSTRAINT_ADD.value: _constraint_add,
    MutationType.CONSTRAINT_REMOVE.value: _constraint_remove,
    MutationType.ROLE_REFINEMENT.value: _role_refinement,
}


def mutate_input(
    record: InputRecord,
    operator: Union[str, MutationType],
    params: Optional[Mapping[str, Any]] = None,
    vocabulary: Optional[Union[Vocabulary, VocabularyRegistry]] = None,
    clock: Optional[Callable[[], datetime]] = None,
    on_upgrade_prompt: Optional[UpgradeCallback] = None,
) -> Tuple[InputRecord, MutationRecord]:
    """Apply one mutation operator to a canonical record.

    Args:
        record: Parent record (canonical).
        operator: Operator name or MutationType.
        params: Operator parameters (see module docstring).
        vocabulary: Vocabulary used to validate tone/output type.
        clock: Timestamp source for the lineage record.
        on_upgrade_prompt: Forwarded to the tier gate.

    Returns:
        (mutated_record, lineage)

    Raises:
        UnsupportedOperatorError: If the operator name is unknown.
    """
    name = operator.value if isinstance(operator, MutationType) else operator
    handler = _OPERATORS.get(name)
    if handler is None:
        raise UnsupportedOperatorError(str(name), SUPPORTED_OPERATORS)

    params = dict(params or {})
    vocab = resolve_vocabulary(vocabulary)
    mutated = apply_gate(handler(record, params, vocab), on_upgrade_prompt)

    parent_hash = hash_input(record)
    lineage = MutationRecord(
        parent_version_id=content_id_for_hash(parent_hash),
        parent_input_hash=parent_hash,
        mutation_type=name,
        parameters=params,
        timestamp=datetime_to_iso((clock or utc_now)()),
    )
    logger.debug("Applied %s to %s", name, lineage.parent_version_id)
    return mutated, lineage


# =============================================================================
# Variant generation
# =============================================================================


class VariantGenerator:
    """Produces sibling variants of a base record for A/B comparison.

    Usage:
        gen = VariantGenerator(rng=random.Random(7))
        variants = gen.generate(record, 3)
        [v.label for v in variants]  # ["V1", "V2", "V3"]
    """

    def __init__(
        self,
        selector: Optional[TemplateSelector] = None,
        versioner: Optional[Versioner] = None,
        rng: Optional[random.Random] = None,
        pool: Optional[Sequence[str]] = None,
        min_count: int = 2,
        max_count: int = 5,
        vocabulary: Optional[Union[Vocabulary, VocabularyRegistry]] = None,
        on_upgrade_prompt: Optional[UpgradeCallback] = None,
    ):
        self.selector = selector or TemplateSelector()
        self.versioner = versioner or Versioner()
        self.rng = rng or random.Random()
        self.pool: Tuple[str, ...] = tuple(pool) if pool else DEFAULT_VARIANT_POOL
        self.min_count = min_count
        self.max_count = max_count
        self.vocabulary = vocabulary
        self.on_upgrade_prompt = on_upgrade_prompt

    def clamp_count(self, count: int) -> int:
        clamped = max(self.min_count, min(self.max_count, count))
        if clamped != count:
            logger.info("Variant count %d clamped to %d", count, clamped)
        return clamped

    def generate(self, record: InputRecord, count: int) -> VariantSet:
        """Generate `count` (clamped) variants of a canonical record."""
        vocab = resolve_vocabulary(self.vocabulary)
        n = self.clamp_count(count)
        result = VariantSet(parent_version_id=content_id_for_hash(hash_input(record)))

        candidates = [op for op in self.pool if self._would_change(record, op)] or list(self.pool)
        for i in range(1, n + 1):
            label = f"V{i}"
            operator = self.rng.choice(candidates)
            try:
                params = self._params_for(operator, record, vocab)
                mutated, lineage = mutate_input(
                    record, operator, params, vocab, self.versioner.clock, self.on_upgrade_prompt
                )
                prompt = self.selector.select(mutated, vocabulary=vocab)
                metadata = self.versioner.version(mutated, parent_version_id=lineage.parent_version_id)
            except PromptStitchError as e:
                logger.warning("Variant %s (%s) failed: %s", label, operator, e)
                result.errors.append(ItemError(item_id=label, error_type=type(e).__name__, message=str(e)))
                continue
            result.variants.append(
                PromptVariant(label=label, output=PromptOutput(prompt, metadata, mutated), lineage=lineage)
            )

        return result

    def _would_change(self, record: InputRecord, operator: str) -> bool:
        if operator == MutationType.DETAIL_EXPANSION.value:
            return record.detail_level != DetailLevel.COMPREHENSIVE.value
        if operator == MutationType.DETAIL_REDUCTION.value:
            return record.detail_level != DetailLevel.BRIEF.value
        if operator == MutationType.CONSTRAINT_REMOVE.value:
            return bool(record.constraints)
        if operator == MutationType.CONSTRAINT_ADD.value:
            return len(record.constraints) < CONSTRAINTS_MAX_ITEMS
        return True

    def _params_for(self, operator: str, record: InputRecord, vocab: Vocabulary) -> Dict[str, Any]:
        """Draw parameters whose new value differs from the record's current one."""
        if operator == MutationType.TONE_SHIFT.value:
            options = [t for t in vocab.allowed_values("tone") if t != record.tone]
            return {"new_tone": self.rng.choice(options)} if options else {}
        if operator == MutationType.FORMAT_TRANSFORM.value:
            options = [t for t in vocab.allowed_values("output_type") if t != record.output_type]
            return {"new_output_type": self.rng.choice(options)} if options else {}
        if operator == MutationType.CONSTRAINT_ADD.value:
            options = [c for c in STOCK_CONSTRAINTS if c not in record.constraints]
            return {"constraint": self.rng.choice(options)} if options else {}
        if operator == MutationType.CONSTRAINT_REMOVE.value:
            if not record.constraints:
                return {}
            return {"constraint_index": self.rng.randrange(len(record.constraints))}
        if operator == MutationType.ROLE_REFINEMENT.value:
            return {"specialization": self.rng.choice(STOCK_SPECIALIZATIONS)}
        return {}

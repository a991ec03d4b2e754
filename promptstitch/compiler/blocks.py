"""
blocks.py - Five-block prompt assembly.

A prompt is built from up to five blocks, always in this order:

    ROLE           "You are a {role}."
    OBJECTIVE      [OBJECTIVE] task plus conditional enhancement clauses
    CONTEXT        [CONTEXT] context, audience, reference examples
    CONSTRAINTS    [CONSTRAINTS] bullet list
    OUTPUT_FORMAT  [OUTPUT FORMAT] format instruction for the output type

Blocks with no content are skipped; the rest are joined by a blank line.
Assembly is a pure function of the record and the vocabulary snapshot.

Usage:
    from promptstitch.compiler.blocks import assemble_prompt

    prompt = assemble_prompt(record)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .types import DEFAULT_AUDIENCE, ComplexityTier, DetailLevel, InputRecord
from .vocabulary import Vocabulary, resolve_vocabulary

logger = logging.getLogger(__name__)

BLOCK_ORDER = ("ROLE", "OBJECTIVE", "CONTEXT", "CONSTRAINTS", "OUTPUT_FORMAT")
BLOCK_SEPARATOR = "\n\n"

# Clauses appended to the objective, in this order
ENHANCEMENT_RULES = {
    "comprehensive": "Provide thorough, detailed analysis covering all relevant aspects.",
    "brief": "Be concise and focus on the most critical points.",
    "examples": "Use the provided examples as reference for style and structure.",
    "multi_step": "Break down the process into clear, sequential steps.",
    "chain_of_thought": "Show your reasoning process step-by-step before providing the final answer.",
}

FREE_TIER_CONSTRAINT = "Provide a straightforward response without advanced techniques"


@dataclass(frozen=True)
class PromptBlock:
    """One rendered block. Empty text means the block is skipped."""
    name: str
    text: str

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


def resolve_role(record: InputRecord, vocabulary: Optional[Vocabulary] = None) -> str:
    """The role to render: the record's own, or derived from the role matrix."""
    if record.role.strip():
        return record.role
    vocab = resolve_vocabulary(vocabulary)
    return vocab.role_for(record.intent_type, record.task_domain)


def role_sentence(role: str) -> str:
    return f"You are a {role}."


# =============================================================================
# Block builders
# =============================================================================


def build_role_block(record: InputRecord, vocabulary: Optional[Vocabulary] = None) -> PromptBlock:
    return PromptBlock("ROLE", role_sentence(resolve_role(record, vocabulary)))


def build_objective_block(record: InputRecord) -> PromptBlock:
    base = f"Your objective is to {record.task_description}"
    if not base.endswith("."):
        base += "."
    parts = [base]

    if record.detail_level == DetailLevel.COMPREHENSIVE.value:
        parts.append(ENHANCEMENT_RULES["comprehensive"])
    elif record.detail_level == DetailLevel.BRIEF.value:
        parts.append(ENHANCEMENT_RULES["brief"])
    if record.examples_included:
        parts.append(ENHANCEMENT_RULES["examples"])
    if record.multi_step_enabled:
        parts.append(ENHANCEMENT_RULES["multi_step"])
    if record.chain_of_thought:
        parts.append(ENHANCEMENT_RULES["chain_of_thought"])

    return PromptBlock("OBJECTIVE", "[OBJECTIVE]\n" + " ".join(parts))


def build_context_block(record: InputRecord) -> PromptBlock:
    elements: List[str] = []

    context = record.context_provided.strip()
    if context:
        elements.append(f"Context:\n{context}")

    audience = record.target_audience.strip()
    if audience and audience.lower() != DEFAULT_AUDIENCE:
        elements.append(f"Target audience: {audience}")

    examples = record.example_text.strip()
    if examples:
        elements.append(f"Reference examples:\n{examples}")

    if not elements:
        return PromptBlock("CONTEXT", "")
    return PromptBlock("CONTEXT", "[CONTEXT]\n" + BLOCK_SEPARATOR.join(elements))


def build_constraints_block(record: InputRecord) -> PromptBlock:
    items = [f"Maintain a {record.tone} tone throughout"]
    if record.output_length_target is not None:
        items.append(f"Target approximately {record.output_length_target} words")
    items.extend(c.strip() for c in record.constraints if c.strip())
    if record.complexity_tier == ComplexityTier.FREE.value:
        items.append(FREE_TIER_CONSTRAINT)
    if record.custom_instructions.strip():
        items.append(record.custom_instructions.strip())

    lines = "\n".join(f"- {item}" for item in items)
    return PromptBlock("CONSTRAINTS", f"[CONSTRAINTS]\n{lines}")


def build_output_format_block(record: InputRecord, vocabulary: Optional[Vocabulary] = None) -> PromptBlock:
    vocab = resolve_vocabulary(vocabulary)
    if record.output_type not in vocab.output_formats:
        logger.debug("No format instruction for output type '%s'; using text", record.output_type)
    comprehensive = record.detail_level == DetailLevel.COMPREHENSIVE.value
    instruction = vocab.format_instruction(record.output_type, comprehensive=comprehensive)
    return PromptBlock("OUTPUT_FORMAT", f"[OUTPUT FORMAT]\n{instruction}")


def build_blocks(record: InputRecord, vocabulary: Optional[Vocabulary] = None) -> List[PromptBlock]:
    """Build all five blocks in canonical order, including empty ones."""
    vocab = resolve_vocabulary(vocabulary)
    return [
        build_role_block(record, vocab),
        build_objective_block(record),
        build_context_block(record),
        build_constraints_block(record),
        build_output_format_block(record, vocab),
    ]


def render_blocks(blocks: List[PromptBlock]) -> str:
    """Join non-empty blocks with a blank line."""
    return BLOCK_SEPARATOR.join(b.text for b in blocks if not b.is_empty).strip()


def assemble_prompt(record: InputRecord, vocabulary: Optional[Vocabulary] = None) -> str:
    """Assemble the standard five-block prompt for a gated record."""
    return render_blocks(build_blocks(record, vocabulary))

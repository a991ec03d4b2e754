"""
templates.py - Tier templates and the custom template registry.

The selector turns a gated record into final prompt text. Three standard
templates wrap the five-block assembly:

    free        the assembled blocks as-is
    pro         + "Additional Instructions:" when custom instructions exist
    enterprise  expert ROLE block, + "Process Requirements:",
                + "Additional Instructions:", + "Quality Standards:" footer

A custom template registered in a TemplateRegistry replaces the standard
path when the record's tier ranks at or above the template's tier.
Otherwise the selector logs a warning and falls back, or raises
TemplateAccessError when strict.

Usage:
    registry = TemplateRegistry()
    registry.register("terse", lambda r: r.task_description, tier="pro")
    selector = TemplateSelector(registry)
    prompt = selector.select(record, custom_name="terse")
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

from promptstitch.config.tier_policy import TIERS, tier_rank
from promptstitch.errors import (
    PromptStitchError,
    RegistryValidationError,
    TemplateAccessError,
    TemplateRenderError,
)

from .blocks import build_blocks, render_blocks, resolve_role
from .types import ComplexityTier, InputRecord
from .vocabulary import Vocabulary, resolve_vocabulary

logger = logging.getLogger(__name__)

TemplateRenderer = Callable[[InputRecord], str]

QUALITY_STANDARDS = (
    "Quality Standards:\n"
    "- Ensure accuracy and completeness\n"
    "- Cross-reference with provided context\n"
    "- Validate against all constraints before finalizing"
)


@dataclass(frozen=True)
class CustomTemplate:
    """A registered renderer and the minimum tier allowed to use it."""
    name: str
    renderer: TemplateRenderer
    tier: str
    version: int = 1


class TemplateRegistry:
    """Caller-owned table of custom templates.

    Re-registering a name replaces the renderer and bumps its version.
    """

    def __init__(self) -> None:
        self._templates: Dict[str, CustomTemplate] = {}
        self._lock = threading.Lock()

    def register(self, name: str, renderer: TemplateRenderer, tier: str) -> CustomTemplate:
        """Register (or replace) a custom template.

        Raises:
            RegistryValidationError: If the name is blank, the renderer is
                not callable, or the tier is unknown.
        """
        if not isinstance(name, str) or not name.strip():
            raise RegistryValidationError("template registry", "Template name must be a non-empty string.")
        if not callable(renderer):
            raise RegistryValidationError("template registry", "Invalid template structure: must be a function.")
        if tier not in TIERS:
            raise RegistryValidationError(
                "template registry",
                f"Invalid tier requirement: '{tier}'. Must be one of: {', '.join(TIERS)}",
            )

        with self._lock:
            previous = self._templates.get(name)
            version = previous.version + 1 if previous else 1
            template = CustomTemplate(name=name, renderer=renderer, tier=tier, version=version)
            self._templates[name] = template

        logger.info("Registered custom template '%s' (tier %s, v%d, total %d)", name, tier, version, len(self))
        return template

    def get(self, name: str) -> Optional[CustomTemplate]:
        return self._templates.get(name)

    def names(self) -> List[str]:
        return sorted(self._templates)

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def __len__(self) -> int:
        return len(self._templates)


# =============================================================================
# Standard templates
# =============================================================================


def _additional_instructions(record: InputRecord) -> str:
    text = record.custom_instructions.strip()
    return f"Additional Instructions:\n{text}" if text else ""


def apply_base_template(record: InputRecord, vocabulary: Optional[Vocabulary] = None) -> str:
    return render_blocks(build_blocks(record, vocabulary))


def apply_advanced_template(record: InputRecord, vocabulary: Optional[Vocabulary] = None) -> str:
    sections = [apply_base_template(record, vocabulary), _additional_instructions(record)]
    return "\n\n".join(s for s in sections if s)


def apply_enterprise_template(record: InputRecord, vocabulary: Optional[Vocabulary] = None) -> str:
    vocab = resolve_vocabulary(vocabulary)
    role = resolve_role(record, vocab)
    blocks = [
        replace(b, text=f"You are a {role} with deep expertise in {record.task_domain}.")
        if b.name == "ROLE" else b
        for b in build_blocks(record, vocab)
    ]
    sections = [render_blocks(blocks)]

    process: List[str] = []
    if record.chain_of_thought:
        process.append("- Show reasoning process before final answer (Chain of Thought)")
    if record.multi_step_enabled:
        process.append("- Number each step clearly (Sequential Process)")
    if process:
        sections.append("Process Requirements:\n" + "\n".join(process))

    sections.append(_additional_instructions(record))
    sections.append(QUALITY_STANDARDS)
    return "\n\n".join(s for s in sections if s)


STANDARD_TEMPLATES: Dict[str, Callable[[InputRecord, Optional[Vocabulary]], str]] = {
    ComplexityTier.FREE.value: apply_base_template,
    ComplexityTier.PRO.value: apply_advanced_template,
    ComplexityTier.ENTERPRISE.value: apply_enterprise_template,
}


# =============================================================================
# Selector
# =============================================================================


class TemplateSelector:
    """Chooses and renders the template for a gated record."""

    def __init__(
        self,
        registry: Optional[TemplateRegistry] = None,
        strict: bool = False,
        vocabulary: Optional[Vocabulary] = None,
    ):
        self.registry = registry if registry is not None else TemplateRegistry()
        self.strict = strict
        self.vocabulary = vocabulary

    def select(
        self,
        record: InputRecord,
        custom_name: Optional[str] = None,
        strict: Optional[bool] = None,
        vocabulary: Optional[Vocabulary] = None,
    ) -> str:
        """Render the prompt text for a record.

        Args:
            record: Gated InputRecord.
            custom_name: Optional custom template to try first.
            strict: Overrides the selector's strict flag for this call.
            vocabulary: Overrides the selector's vocabulary for this call.

        Raises:
            TemplateAccessError: In strict mode, when custom_name is not
                registered or the record's tier is insufficient.
            TemplateRenderError: When a custom renderer raises or returns
                something other than a string.
        """
        strict = self.strict if strict is None else strict
        vocab = resolve_vocabulary(vocabulary or self.vocabulary)
        tier = record.complexity_tier

        if custom_name:
            template = self.registry.get(custom_name)
            if template is None:
                if strict:
                    raise TemplateAccessError(custom_name, tier)
                logger.warning("Custom template '%s' is not registered. Falling back.", custom_name)
            elif tier_rank(tier) >= tier_rank(template.tier):
                logger.debug("Using custom template '%s' v%d", template.name, template.version)
                return self._render_custom(template, record)
            else:
                if strict:
                    raise TemplateAccessError(custom_name, tier, template.tier)
                logger.warning(
                    "Tier '%s' insufficient for custom template '%s' (requires '%s'). Falling back.",
                    tier, custom_name, template.tier,
                )

        render = STANDARD_TEMPLATES.get(tier, apply_base_template)
        return render(record, vocab)

    @staticmethod
    def _render_custom(template: CustomTemplate, record: InputRecord) -> str:
        try:
            prompt = template.renderer(record)
        except PromptStitchError:
            raise
        except Exception as e:
            raise TemplateRenderError(template.name, e) from e
        if not isinstance(prompt, str):
            raise TemplateRenderError(
                template.name, TypeError(f"renderer returned {type(prompt).__name__}, expected str")
            )
        return prompt


def select_template(
    record: InputRecord,
    custom_name: Optional[str] = None,
    registry: Optional[TemplateRegistry] = None,
    strict: bool = False,
) -> str:
    """Convenience wrapper around TemplateSelector.select()."""
    return TemplateSelector(registry, strict=strict).select(record, custom_name)


__all__ = [
    "CustomTemplate",
    "QUALITY_STANDARDS",
    "TemplateRegistry",
    "TemplateRenderer",
    "TemplateSelector",
    "apply_advanced_template",
    "apply_base_template",
    "apply_enterprise_template",
    "select_template",
]

"""
engine.py - PromptEngine: the public entry point of the compiler.

Wires the pipeline stages together:

    partial input
        -> canonicalize()      corrections reported as input_corrected events
        -> apply_gate()        denials reported as upgrade_prompted events
        -> TemplateSelector    standard tier template or custom template
        -> Versioner           content hash + random version id
        -> PromptOutput        prompt_generated event

Batch and variant generation reuse the same stages and isolate per-item
PromptStitchError failures into an error list. Event sink failures are
logged and never fail a request.

Usage:
    from promptstitch.compiler import PromptEngine

    engine = PromptEngine()
    output = engine.generate_prompt(
        {"task_description": "draft a launch plan", "intent_type": "plan"},
        user_id="u-1",
        session_id="s-1",
    )
    print(output.prompt)
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from promptstitch.config.runtime_config import EngineConfig, get_engine_config
from promptstitch.errors import MissingRequiredFieldError, PromptStitchError
from promptstitch.runtime._ids import generate_batch_id
from promptstitch.runtime.events import (
    BATCH_GENERATED,
    INPUT_CORRECTED,
    PROMPT_GENERATED,
    UPGRADE_PROMPTED,
    VARIANTS_GENERATED,
    EngineEvent,
    EventSink,
    create_event_sink,
    emit_safely,
)

from .canonicalizer import Canonicalizer, FallbackWarning, PartialInput
from .gates import UpgradeEvent, apply_gate, build_upgrade_event
from .mutation import VariantGenerator
from .templates import TemplateRegistry, TemplateSelector
from .types import (
    BatchReport,
    BatchResult,
    InputRecord,
    ItemError,
    PromptOutput,
    VariantSet,
    VersionMetadata,
)
from .versioning import Versioner
from .vocabulary import Vocabulary, VocabularyRegistry, resolve_vocabulary

logger = logging.getLogger(__name__)

DEFAULT_VARIANT_COUNT = 3


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)) and all(isinstance(v, (str, int, float, bool)) for v in value):
        return list(value)
    return repr(value)


class PromptEngine:
    """Compiles structured input into versioned prompts.

    All collaborators are injectable; anything not supplied is built from
    the resolved EngineConfig.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        vocabulary: Optional[Union[Vocabulary, VocabularyRegistry]] = None,
        templates: Optional[TemplateRegistry] = None,
        event_sink: Optional[EventSink] = None,
        versioner: Optional[Versioner] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or get_engine_config()
        self.vocabulary = vocabulary
        self.templates = templates if templates is not None else TemplateRegistry()
        self.event_sink = (
            event_sink
            if event_sink is not None
            else create_event_sink(self.config.event_sink, self.config.event_log_path)
        )
        self.versioner = versioner or Versioner(
            template_version=self.config.template_version,
            engine_version=self.config.engine_version,
        )
        self.selector = TemplateSelector(self.templates, strict=self.config.strict_templates)
        self.rng = rng or random.Random()

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _emit(self, kind: str, payload: Dict[str, Any]) -> None:
        emit_safely(self.event_sink, EngineEvent(kind=kind, payload=payload))

    def _on_correction(self, warning: FallbackWarning, context: Dict[str, Any]) -> None:
        if warning.reason == "tier_restricted":
            self._on_upgrade(build_upgrade_event(warning.field, context.get("tier", "")), context)
            return
        self._emit(INPUT_CORRECTED, {
            **context,
            "field": warning.field,
            "reason": warning.reason,
            "invalid_value": _jsonable(warning.invalid_value),
            "corrected_value": _jsonable(warning.corrected_value),
        })

    def _on_upgrade(self, event: UpgradeEvent, context: Dict[str, Any]) -> None:
        self._emit(UPGRADE_PROMPTED, {**context, **event.to_dict()})

    def _canonicalize(self, partial: PartialInput, vocab: Vocabulary, context: Dict[str, Any]) -> InputRecord:
        corrections: List[FallbackWarning] = []
        record = Canonicalizer(vocab, corrections.append).canonicalize(partial)
        context["tier"] = record.complexity_tier
        for warning in corrections:
            self._on_correction(warning, context)
        return record

    def compile(
        self,
        partial: PartialInput,
        custom_template: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Tuple[str, VersionMetadata, InputRecord]:
        """Run canonicalize, gate, template and versioning for one input.

        Returns:
            (prompt, metadata, gated_record)

        Raises:
            MissingRequiredFieldError: If the task description is missing.
            TemplateAccessError: In strict mode, for an unusable template.
        """
        context = dict(context or {})
        vocab = resolve_vocabulary(self.vocabulary)
        record = self._canonicalize(partial, vocab, context)
        gated = apply_gate(record, lambda e: self._on_upgrade(e, context))
        prompt = self.selector.select(gated, custom_template, vocabulary=vocab)
        metadata = self.versioner.version(gated)
        return prompt, metadata, gated

    def generate_prompt(
        self,
        partial: PartialInput,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        custom_template: Optional[str] = None,
    ) -> PromptOutput:
        """Compile one input into a PromptOutput and emit prompt_generated.

        Raises:
            MissingRequiredFieldError: If the task description is missing.
            TemplateAccessError: In strict mode, for an unusable template.
        """
        context = {"user_id": user_id, "session_id": session_id}
        prompt, metadata, record = self.compile(partial, custom_template, context)
        self._emit(PROMPT_GENERATED, {
            "user_id": user_id,
            "session_id": session_id,
            "version_id": metadata.version_id,
            "tier": record.complexity_tier,
        })
        logger.info("Generated prompt %s (%s tier, %d chars)", metadata.version_id, record.complexity_tier, len(prompt))
        return PromptOutput(prompt=prompt, metadata=metadata, input_used=record)

    def batch_generate(
        self,
        inputs: Iterable[Mapping[str, Any]],
        custom_template: Optional[str] = None,
    ) -> BatchReport:
        """Compile many inputs; failures are collected, not raised.

        Each item's identifier comes from its "id" key, or is generated
        as "batch_" plus 9 random base-36 characters.
        """
        report = BatchReport()
        for item in inputs:
            raw_id = item.get("id") if isinstance(item, Mapping) else None
            item_id = str(raw_id) if raw_id not in (None, "") else generate_batch_id()
            try:
                if not isinstance(item, Mapping):
                    raise MissingRequiredFieldError("task_description", "batch item is not a mapping")
                prompt, metadata, record = self.compile(item, custom_template, {"input_id": item_id})
            except PromptStitchError as e:
                logger.warning("Batch item %s failed: %s", item_id, e)
                report.errors.append(ItemError(item_id=item_id, error_type=type(e).__name__, message=str(e)))
                continue
            report.results.append(
                BatchResult(input_id=item_id, prompt=prompt, metadata=metadata, input_used=record)
            )

        self._emit(BATCH_GENERATED, {
            "count": len(report.results),
            "errors": len(report.errors),
            "input_ids": [r.input_id for r in report.results],
        })
        return report

    def generate_variants(self, record: PartialInput, count: int = DEFAULT_VARIANT_COUNT) -> VariantSet:
        """Generate A/B variants of a record (count clamped to the configured bounds).

        Raises:
            MissingRequiredFieldError: If the base input has no task description.
        """
        context: Dict[str, Any] = {}
        vocab = resolve_vocabulary(self.vocabulary)
        base = self._canonicalize(record, vocab, context)
        base = apply_gate(base, lambda e: self._on_upgrade(e, context))

        generator = VariantGenerator(
            selector=self.selector,
            versioner=self.versioner,
            rng=self.rng,
            pool=self.config.operator_pool,
            min_count=self.config.variant_min_count,
            max_count=self.config.variant_max_count,
            vocabulary=vocab,
            on_upgrade_prompt=lambda e: self._on_upgrade(e, context),
        )
        variants = generator.generate(base, count)

        self._emit(VARIANTS_GENERATED, {
            "parent_version_id": variants.parent_version_id,
            "labels": [v.label for v in variants],
            "mutations": [v.mutation_type for v in variants],
            "errors": len(variants.errors),
        })
        return variants


# =============================================================================
# Module-level convenience API
# =============================================================================

_default_engine: Optional[PromptEngine] = None


def get_default_engine() -> PromptEngine:
    """Lazily build a PromptEngine from the resolved configuration."""
    global _default_engine
    if _default_engine is None:
        _default_engine = PromptEngine()
    return _default_engine


def reset_default_engine() -> None:
    global _default_engine
    _default_engine = None


def generate_prompt(
    partial: PartialInput,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
) -> PromptOutput:
    return get_default_engine().generate_prompt(partial, user_id, session_id)


def batch_generate(inputs: Iterable[Mapping[str, Any]]) -> BatchReport:
    return get_default_engine().batch_generate(inputs)


def generate_variants(record: PartialInput, count: int = DEFAULT_VARIANT_COUNT) -> VariantSet:
    return get_default_engine().generate_variants(record, count)


__all__: List[str] = [
    "DEFAULT_VARIANT_COUNT",
    "PromptEngine",
    "batch_generate",
    "generate_prompt",
    "generate_variants",
    "get_default_engine",
    "reset_default_engine",
]

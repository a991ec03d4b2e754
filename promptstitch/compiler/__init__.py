"""
promptstitch/compiler - The prompt compilation pipeline.

This package turns partial input into versioned prompt text:
- Canonicalizer: validates, corrects and normalizes raw input
- Tier gate: clears capabilities the record's tier may not use
- Blocks + templates: five-block assembly wrapped in a tier template
- Versioner: content hash plus random version id
- Mutation: single-aspect mutations and A/B variant generation
- Engine: wires the stages together and emits events

Usage:
    from promptstitch.compiler import (
        PromptEngine,
        canonicalize,
        apply_gate,
        assemble_prompt,
        mutate_input,
        VocabularyRegistry,
        TemplateRegistry,
    )

    engine = PromptEngine(vocabulary=VocabularyRegistry())
    output = engine.generate_prompt({"task_description": "outline a study plan"})
    variants = engine.generate_variants(output.input_used, 3)
"""

from .types import (
    BatchReport,
    BatchResult,
    ComplexityTier,
    DEFAULT_INPUT,
    DetailLevel,
    InputRecord,
    IntentType,
    ItemError,
    MutationRecord,
    MutationType,
    OutputType,
    PromptOutput,
    PromptVariant,
    TaskDomain,
    Tone,
    VariantSet,
    VersionMetadata,
    input_record_from_dict,
    input_record_to_dict,
)

from .vocabulary import (
    Vocabulary,
    VocabularyChange,
    VocabularyRegistry,
    builtin_vocabulary,
)

from .canonicalizer import (
    Canonicalizer,
    FallbackWarning,
    canonicalize,
)

from .gates import (
    UpgradeEvent,
    apply_gate,
    check_feature_access,
)

from .blocks import (
    PromptBlock,
    assemble_prompt,
    build_blocks,
)

from .templates import (
    CustomTemplate,
    TemplateRegistry,
    TemplateSelector,
    select_template,
)

from .versioning import (
    Versioner,
    hash_input,
    serialize_for_hash,
)

from .mutation import (
    VariantGenerator,
    mutate_input,
)

from .engine import (
    PromptEngine,
    batch_generate,
    generate_prompt,
    generate_variants,
)

__all__ = [
    # Types
    "BatchReport",
    "BatchResult",
    "ComplexityTier",
    "DEFAULT_INPUT",
    "DetailLevel",
    "InputRecord",
    "IntentType",
    "ItemError",
    "MutationRecord",
    "MutationType",
    "OutputType",
    "PromptOutput",
    "PromptVariant",
    "TaskDomain",
    "Tone",
    "VariantSet",
    "VersionMetadata",
    "input_record_from_dict",
    "input_record_to_dict",
    # Vocabulary
    "Vocabulary",
    "VocabularyChange",
    "VocabularyRegistry",
    "builtin_vocabulary",
    # Pipeline stages
    "Canonicalizer",
    "FallbackWarning",
    "canonicalize",
    "UpgradeEvent",
    "apply_gate",
    "check_feature_access",
    "PromptBlock",
    "assemble_prompt",
    "build_blocks",
    "CustomTemplate",
    "TemplateRegistry",
    "TemplateSelector",
    "select_template",
    "Versioner",
    "hash_input",
    "serialize_for_hash",
    "VariantGenerator",
    "mutate_input",
    # Engine
    "PromptEngine",
    "batch_generate",
    "generate_prompt",
    "generate_variants",
]

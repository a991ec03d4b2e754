"""End-to-end tests for PromptEngine.

Covers single-prompt generation, the event stream, batch isolation and
variant generation through the public engine API.
"""

import re
from dataclasses import replace

import pytest

from promptstitch.compiler import engine as engine_module
from promptstitch.compiler.blocks import ENHANCEMENT_RULES, FREE_TIER_CONSTRAINT
from promptstitch.compiler.engine import PromptEngine, generate_prompt
from promptstitch.compiler.templates import TemplateRegistry
from promptstitch.compiler.types import PromptOutput, content_id_for_hash
from promptstitch.compiler.versioning import hash_input
from promptstitch.compiler.vocabulary import VocabularyRegistry
from promptstitch.config.runtime_config import EngineConfig
from promptstitch.errors import MissingRequiredFieldError, TemplateAccessError
from promptstitch.runtime.events import (
    BATCH_GENERATED,
    INPUT_CORRECTED,
    PROMPT_GENERATED,
    UPGRADE_PROMPTED,
    VARIANTS_GENERATED,
)


class _BrokenSink:
    def emit(self, event):
        raise RuntimeError("sink offline")


class TestScenarios:
    """Representative end-to-end requests."""

    def test_free_tier_requesting_chain_of_thought(self, engine, sink):
        output = engine.generate_prompt(
            {
                "task_description": "explain how vaccines train the immune system",
                "complexity_tier": "free",
                "chain_of_thought": True,
            },
            user_id="u-1",
            session_id="s-1",
        )

        assert output.input_used.chain_of_thought is False
        assert ENHANCEMENT_RULES["chain_of_thought"] not in output.prompt
        assert f"- {FREE_TIER_CONSTRAINT}" in output.prompt

        upgrades = sink.of_kind(UPGRADE_PROMPTED)
        assert len(upgrades) == 1
        assert upgrades[0].payload["feature_name"] == "chain_of_thought"
        assert upgrades[0].payload["user_tier"] == "free"
        assert upgrades[0].payload["required_tiers"] == ["enterprise"]
        assert upgrades[0].payload["user_id"] == "u-1"

    def test_role_derived_from_plan_marketing(self, engine):
        output = engine.generate_prompt({
            "task_description": "draft a quarterly campaign plan",
            "intent_type": "plan",
            "task_domain": "marketing",
            "role": "",
        })
        assert output.prompt.startswith("You are a Campaign Strategy Director.\n\n[OBJECTIVE]")

    def test_bogus_output_type_falls_back_to_text(self, engine, sink):
        output = engine.generate_prompt({
            "task_description": "describe the new office layout",
            "output_type": "hologram",
        })

        assert output.input_used.output_type == "text"
        assert output.prompt.endswith(
            "[OUTPUT FORMAT]\nProvide your response as clear, well-structured paragraphs."
        )
        corrected = sink.of_kind(INPUT_CORRECTED)
        assert len(corrected) == 1
        assert corrected[0].payload["field"] == "output_type"
        assert corrected[0].payload["invalid_value"] == "hologram"
        assert corrected[0].payload["corrected_value"] == "text"

    def test_three_variants_keep_lineage_and_tier(self, engine, sink, enterprise_input):
        base = engine.generate_prompt(enterprise_input)
        variants = engine.generate_variants(base.input_used, 3)

        assert len(variants) == 3
        assert variants.parent_version_id == base.metadata.content_id
        for variant in variants:
            assert variant.lineage.parent_version_id == base.metadata.content_id
            assert variant.output.metadata.parent_version_id == base.metadata.content_id
            used = variant.output.input_used
            assert used.complexity_tier == "enterprise"
            assert used.chain_of_thought is True
            assert used.multi_step_enabled is True
            assert variant.output.prompt.endswith("Validate against all constraints before finalizing")

        summary = sink.of_kind(VARIANTS_GENERATED)[-1]
        assert summary.payload["labels"] == ["V1", "V2", "V3"]
        assert summary.payload["parent_version_id"] == base.metadata.content_id


class TestGeneratePrompt:
    def test_output_package(self, engine, enterprise_input):
        output = engine.generate_prompt(enterprise_input)

        assert isinstance(output, PromptOutput)
        assert output.metadata.version_id == "ver-0001"
        assert output.metadata.input_hash == hash_input(output.input_used)
        assert output.metadata.content_id == content_id_for_hash(output.metadata.input_hash)
        assert output.input_used.task_description.startswith("Review the incident")
        data = output.to_dict()
        assert set(data) == {"prompt", "metadata", "input_used"}
        assert data["input_used"]["constraints"] == ["Reference log timestamps", "Keep findings factual"]

    def test_prompt_generated_event(self, engine, sink):
        output = engine.generate_prompt(
            {"task_description": "summarize the Q3 report", "complexity_tier": "pro"},
            user_id="u-42",
            session_id="s-9",
        )
        events = sink.of_kind(PROMPT_GENERATED)
        assert len(events) == 1
        assert events[0].payload == {
            "user_id": "u-42",
            "session_id": "s-9",
            "version_id": output.metadata.version_id,
            "tier": "pro",
        }

    def test_same_input_same_hash_new_id(self, engine):
        partial = {"task_description": "summarize the Q3 report"}
        first = engine.generate_prompt(partial)
        second = engine.generate_prompt(partial)

        assert first.prompt == second.prompt
        assert first.metadata.input_hash == second.metadata.input_hash
        assert first.metadata.version_id != second.metadata.version_id

    def test_missing_task_propagates(self, engine, sink):
        with pytest.raises(MissingRequiredFieldError):
            engine.generate_prompt({"tone": "casual"})
        assert sink.events == []

    def test_broken_sink_never_fails_generation(self, versioner, caplog):
        engine = PromptEngine(config=EngineConfig(), event_sink=_BrokenSink(), versioner=versioner)
        output = engine.generate_prompt({"task_description": "summarize the Q3 report"})
        assert output.prompt
        assert "sink offline" in caplog.text

    def test_custom_template(self, sink, versioner):
        templates = TemplateRegistry()
        templates.register("plain", lambda r: f"TASK: {r.task_description}", "pro")
        engine = PromptEngine(config=EngineConfig(), templates=templates, event_sink=sink, versioner=versioner)

        output = engine.generate_prompt(
            {"task_description": "summarize the Q3 report", "complexity_tier": "pro"},
            custom_template="plain",
        )
        assert output.prompt == "TASK: Summarize the Q3 report"

    def test_strict_config_raises_for_template(self, sink, versioner):
        config = replace(EngineConfig(), strict_templates=True)
        engine = PromptEngine(config=config, event_sink=sink, versioner=versioner)
        with pytest.raises(TemplateAccessError):
            engine.generate_prompt({"task_description": "summarize the Q3 report"}, custom_template="missing")

    def test_vocabulary_registry(self, sink, versioner):
        registry = VocabularyRegistry()
        registry.add_output_type("haiku", "Respond as a single haiku of three lines.")
        engine = PromptEngine(config=EngineConfig(), vocabulary=registry, event_sink=sink, versioner=versioner)

        output = engine.generate_prompt({"task_description": "describe the sunrise", "output_type": "HAIKU"})
        assert output.input_used.output_type == "haiku"
        assert output.prompt.endswith("[OUTPUT FORMAT]\nRespond as a single haiku of three lines.")

    def test_module_level_generate_prompt(self, monkeypatch):
        monkeypatch.setenv("PROMPTSTITCH_EVENT_SINK", "none")
        output = generate_prompt({"task_description": "summarize the Q3 report"}, "u-1", "s-1")
        assert output.metadata.template_version == "3.2"
        assert engine_module.get_default_engine() is engine_module.get_default_engine()


class TestBatchGenerate:
    def test_ids_and_error_isolation(self, engine, sink):
        report = engine.batch_generate([
            {"id": "first", "task_description": "summarize the Q3 report"},
            {"id": "broken", "tone": "casual"},
            {"task_description": "list three onboarding steps", "output_type": "list"},
        ])

        assert [r.input_id for r in report][0] == "first"
        assert len(report) == 2
        assert re.fullmatch(r"batch_[a-z0-9]{9}", report.results[1].input_id)
        assert not report.ok
        assert len(report.errors) == 1
        assert report.errors[0].item_id == "broken"
        assert report.errors[0].error_type == "MissingRequiredFieldError"

        summary = sink.of_kind(BATCH_GENERATED)[-1]
        assert summary.payload["count"] == 2
        assert summary.payload["errors"] == 1

    def test_failing_custom_renderer_is_isolated(self, sink, versioner):
        """A renderer crash on one item leaves the other items' results intact."""
        def render(record):
            if "onboarding" in record.task_description:
                raise KeyError("missing slot")
            return f"TASK: {record.task_description}"

        templates = TemplateRegistry()
        templates.register("slotted", render, "free")
        engine = PromptEngine(config=EngineConfig(), templates=templates, event_sink=sink, versioner=versioner)

        report = engine.batch_generate(
            [
                {"id": "a", "task_description": "summarize the Q3 report"},
                {"id": "b", "task_description": "list three onboarding steps"},
                {"id": "c", "task_description": "draft a launch announcement"},
            ],
            custom_template="slotted",
        )

        assert [r.input_id for r in report.results] == ["a", "c"]
        assert report.results[0].prompt == "TASK: Summarize the Q3 report"
        assert len(report.errors) == 1
        assert report.errors[0].item_id == "b"
        assert report.errors[0].error_type == "TemplateRenderError"
        assert "missing slot" in report.errors[0].message

    def test_numeric_id_is_stringified(self, engine):
        report = engine.batch_generate([{"id": 7, "task_description": "summarize the Q3 report"}])
        assert report.results[0].input_id == "7"

    def test_non_mapping_item_is_collected(self, engine):
        report = engine.batch_generate(["not a record"])
        assert len(report) == 0
        assert report.errors[0].error_type == "MissingRequiredFieldError"

    def test_to_dict(self, engine):
        report = engine.batch_generate([{"id": "a", "task_description": "summarize the Q3 report"}])
        data = report.to_dict()
        assert data["errors"] == []
        assert data["results"][0]["input_id"] == "a"


class TestGenerateVariants:
    def test_accepts_partial_input(self, engine):
        variants = engine.generate_variants({"task_description": "draft a launch note"}, 2)
        assert len(variants) == 2

    def test_missing_task_raises(self, engine):
        with pytest.raises(MissingRequiredFieldError):
            engine.generate_variants({"tone": "casual"})

    def test_count_uses_config_bounds(self, sink, versioner):
        config = replace(EngineConfig(), variant_min_count=3, variant_max_count=4)
        engine = PromptEngine(config=config, event_sink=sink, versioner=versioner)
        assert len(engine.generate_variants({"task_description": "draft a launch note"}, 1)) == 3
        assert len(engine.generate_variants({"task_description": "draft a launch note"}, 9)) == 4

"""Tests for tier templates, the custom template registry and the selector."""

import logging
from dataclasses import replace

import pytest

from promptstitch.compiler.blocks import assemble_prompt
from promptstitch.compiler.templates import (
    QUALITY_STANDARDS,
    TemplateRegistry,
    TemplateSelector,
    select_template,
)
from promptstitch.compiler.types import InputRecord
from promptstitch.errors import RegistryValidationError, TemplateAccessError, TemplateRenderError


@pytest.fixture
def pro_record():
    return InputRecord(
        intent_type="analyze",
        task_domain="technical",
        role="",
        task_description="Review the incident timeline",
        context_provided="Outage affected the payments API.",
        constraints=("Reference log timestamps",),
        complexity_tier="pro",
        custom_instructions="Flag any gaps in monitoring.",
        multi_step_enabled=True,
        output_length_target=600,
    )


class TestStandardTemplates:
    """free → assembled, pro → + instructions, enterprise → expert wrapper."""

    def test_free_is_plain_assembly(self):
        record = InputRecord(task_description="Summarize the Q3 report")
        assert select_template(record) == assemble_prompt(record)

    def test_pro_appends_additional_instructions(self, pro_record):
        prompt = select_template(pro_record)
        assert prompt == assemble_prompt(pro_record) + "\n\nAdditional Instructions:\nFlag any gaps in monitoring."

    def test_pro_without_instructions_is_plain_assembly(self, pro_record):
        record = replace(pro_record, custom_instructions="")
        assert select_template(record) == assemble_prompt(record)

    def test_enterprise_wrapper(self, pro_record):
        record = replace(pro_record, complexity_tier="enterprise", chain_of_thought=True)
        prompt = select_template(record)

        assert prompt.startswith(
            "You are a Technical Systems Analyst with deep expertise in technical.\n\n[OBJECTIVE]"
        )
        assert (
            "Process Requirements:\n"
            "- Show reasoning process before final answer (Chain of Thought)\n"
            "- Number each step clearly (Sequential Process)"
        ) in prompt
        assert "Additional Instructions:\nFlag any gaps in monitoring." in prompt
        assert prompt.endswith(QUALITY_STANDARDS)

    def test_enterprise_role_replacement_is_structural(self):
        """A task that repeats the role sentence is not rewritten."""
        record = InputRecord(
            role="Editor",
            task_description="Rewrite the line 'You are a Editor.' as a question",
            complexity_tier="enterprise",
        )
        prompt = select_template(record)
        assert prompt.startswith("You are a Editor with deep expertise in business.")
        assert "'You are a Editor.'" in prompt

    def test_enterprise_without_process_flags(self):
        record = InputRecord(task_description="Summarize the Q3 report", complexity_tier="enterprise")
        prompt = select_template(record)
        assert "Process Requirements:" not in prompt
        assert "Additional Instructions:" not in prompt
        assert prompt.endswith(QUALITY_STANDARDS)


class TestTierMonotonicity:
    """A higher tier never drops content a lower tier renders for the same record."""

    def test_enterprise_contains_every_pro_line(self, pro_record):
        pro_prompt = select_template(pro_record)
        enterprise_prompt = select_template(replace(pro_record, complexity_tier="enterprise"))

        enterprise_lines = set(enterprise_prompt.splitlines())
        pro_lines = pro_prompt.splitlines()[1:]  # ROLE line is rewritten
        missing = [line for line in pro_lines if line and line not in enterprise_lines]
        assert missing == []

    def test_pro_keeps_free_blocks(self):
        free = InputRecord(task_description="Summarize the Q3 report", context_provided="Revenue grew 4%.")
        pro = replace(free, complexity_tier="pro")
        free_sections = select_template(free).split("\n\n")
        pro_sections = select_template(pro).split("\n\n")

        # Only the constraints block differs (the free-tier simplicity bullet)
        differing = [s for s in free_sections if s not in pro_sections]
        assert len(differing) == 1
        assert differing[0].startswith("[CONSTRAINTS]")


class TestTemplateRegistry:
    def test_register_and_version(self):
        registry = TemplateRegistry()
        first = registry.register("terse", lambda r: r.task_description, "pro")
        second = registry.register("terse", lambda r: r.task_description.upper(), "pro")

        assert first.version == 1
        assert second.version == 2
        assert "terse" in registry
        assert len(registry) == 1
        assert registry.names() == ["terse"]

    def test_renderer_must_be_callable(self):
        with pytest.raises(RegistryValidationError):
            TemplateRegistry().register("broken", "not a function", "pro")

    def test_tier_must_be_known(self):
        with pytest.raises(RegistryValidationError):
            TemplateRegistry().register("gold", lambda r: "", "platinum")

    def test_name_must_not_be_blank(self):
        with pytest.raises(RegistryValidationError):
            TemplateRegistry().register("  ", lambda r: "", "free")


class TestTemplateSelector:
    @pytest.fixture
    def selector(self):
        registry = TemplateRegistry()
        registry.register("terse", lambda r: f"TERSE: {r.task_description}", "pro")
        return TemplateSelector(registry)

    def test_custom_template_used_when_tier_sufficient(self, selector, pro_record):
        assert selector.select(pro_record, "terse") == "TERSE: Review the incident timeline"

    def test_higher_tier_may_use_lower_template(self, selector, pro_record):
        record = replace(pro_record, complexity_tier="enterprise")
        assert selector.select(record, "terse") == "TERSE: Review the incident timeline"

    def test_insufficient_tier_falls_back(self, selector, caplog):
        record = InputRecord(task_description="Summarize the Q3 report")
        with caplog.at_level(logging.WARNING):
            prompt = selector.select(record, "terse")
        assert prompt == assemble_prompt(record)
        assert "insufficient" in caplog.text

    def test_unregistered_template_falls_back(self, selector, pro_record, caplog):
        with caplog.at_level(logging.WARNING):
            prompt = selector.select(pro_record, "missing")
        assert prompt == select_template(pro_record)
        assert "not registered" in caplog.text

    def test_strict_insufficient_tier_raises(self, selector):
        record = InputRecord(task_description="Summarize the Q3 report")
        with pytest.raises(TemplateAccessError) as excinfo:
            selector.select(record, "terse", strict=True)
        assert excinfo.value.required_tier == "pro"
        assert excinfo.value.tier == "free"

    def test_strict_unregistered_raises(self, pro_record):
        selector = TemplateSelector(TemplateRegistry(), strict=True)
        with pytest.raises(TemplateAccessError) as excinfo:
            selector.select(pro_record, "missing")
        assert excinfo.value.required_tier is None

    def test_renderer_exception_is_wrapped(self, pro_record):
        def render(record):
            raise KeyError("missing slot")

        registry = TemplateRegistry()
        registry.register("slotted", render, "free")
        with pytest.raises(TemplateRenderError) as excinfo:
            TemplateSelector(registry).select(pro_record, "slotted")
        assert excinfo.value.template_name == "slotted"
        assert isinstance(excinfo.value.__cause__, KeyError)

    def test_non_string_render_result_is_rejected(self, pro_record):
        registry = TemplateRegistry()
        registry.register("numeric", lambda r: 42, "free")
        with pytest.raises(TemplateRenderError, match="returned int"):
            TemplateSelector(registry).select(pro_record, "numeric")

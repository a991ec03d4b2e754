"""Tests for the promptstitch-generate command-line tool."""

import json

import pytest

from promptstitch.tools.generate_prompt import (
    EXIT_BAD_INPUT,
    EXIT_COMPILE_ERROR,
    EXIT_OK,
    main,
)


@pytest.fixture(autouse=True)
def quiet_events(monkeypatch):
    monkeypatch.setenv("PROMPTSTITCH_EVENT_SINK", "none")


@pytest.fixture
def input_file(tmp_path):
    path = tmp_path / "input.yaml"
    path.write_text(
        "task_description: draft a quarterly campaign plan\n"
        "intent_type: plan\n"
        "task_domain: marketing\n"
        "role: ''\n",
        encoding="utf-8",
    )
    return path


class TestSinglePrompt:
    def test_prints_prompt(self, input_file, capsys):
        assert main([str(input_file)]) == EXIT_OK
        out = capsys.readouterr().out
        assert out.startswith("You are a Campaign Strategy Director.")

    def test_json_output(self, input_file, capsys):
        assert main([str(input_file), "--json"]) == EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert data["input_used"]["intent_type"] == "plan"
        assert data["metadata"]["template_version"] == "3.2"

    def test_json_input(self, tmp_path, capsys):
        path = tmp_path / "input.json"
        path.write_text(json.dumps({"task_description": "list three onboarding steps", "output_type": "list"}))
        assert main([str(path)]) == EXIT_OK
        assert "numbered or bulleted list" in capsys.readouterr().out

    def test_missing_task_exits_1(self, tmp_path, capsys):
        path = tmp_path / "input.yaml"
        path.write_text("tone: casual\n", encoding="utf-8")
        assert main([str(path)]) == EXIT_COMPILE_ERROR
        assert "task_description" in capsys.readouterr().err

    def test_strict_template_exits_1(self, input_file, capsys):
        assert main([str(input_file), "--template", "house-style", "--strict"]) == EXIT_COMPILE_ERROR
        assert "not registered" in capsys.readouterr().err

    def test_non_strict_template_falls_back(self, input_file, capsys):
        assert main([str(input_file), "--template", "house-style"]) == EXIT_OK
        assert capsys.readouterr().out.startswith("You are a Campaign Strategy Director.")


class TestBadInput:
    def test_missing_file(self, tmp_path, capsys):
        assert main([str(tmp_path / "absent.yaml")]) == EXIT_BAD_INPUT
        assert "Cannot read" in capsys.readouterr().err

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "input.yaml"
        path.write_text("task_description: [unclosed\n", encoding="utf-8")
        assert main([str(path)]) == EXIT_BAD_INPUT

    def test_list_without_batch(self, tmp_path):
        path = tmp_path / "input.yaml"
        path.write_text("- task_description: summarize the Q3 report\n", encoding="utf-8")
        assert main([str(path)]) == EXIT_BAD_INPUT

    def test_mapping_with_batch(self, input_file):
        assert main([str(input_file), "--batch"]) == EXIT_BAD_INPUT


class TestBatchAndVariants:
    def test_batch(self, tmp_path, capsys):
        path = tmp_path / "batch.yaml"
        path.write_text(
            "- id: first\n  task_description: summarize the Q3 report\n"
            "- id: second\n  task_description: list three onboarding steps\n",
            encoding="utf-8",
        )
        assert main([str(path), "--batch", "--json"]) == EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert [r["input_id"] for r in data["results"]] == ["first", "second"]

    def test_batch_with_failure_exits_1(self, tmp_path, capsys):
        path = tmp_path / "batch.yaml"
        path.write_text(
            "- id: good\n  task_description: summarize the Q3 report\n"
            "- id: bad\n  tone: casual\n",
            encoding="utf-8",
        )
        assert main([str(path), "--batch"]) == EXIT_COMPILE_ERROR
        captured = capsys.readouterr()
        assert "### good" in captured.out
        assert "item bad" in captured.err

    def test_variants(self, input_file, capsys):
        assert main([str(input_file), "--variants", "2"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "### V1 (" in out
        assert "### V2 (" in out

    def test_variants_json(self, input_file, capsys):
        assert main([str(input_file), "--variants", "3", "--json"]) == EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert [v["label"] for v in data["variants"]] == ["V1", "V2", "V3"]
        assert all(v["lineage"]["parent_version_id"] == data["parent_version_id"] for v in data["variants"])

    def test_variant_failures_exit_1(self, input_file, tmp_path, monkeypatch, capsys):
        config = tmp_path / "engine.yaml"
        config.write_text("variants:\n  operator_pool: [tone_twist]\n", encoding="utf-8")
        monkeypatch.setenv("PROMPTSTITCH_CONFIG", str(config))

        assert main([str(input_file), "--variants", "2"]) == EXIT_COMPILE_ERROR
        err = capsys.readouterr().err
        assert "variant V1" in err
        assert "tone_twist" in err

#!/usr/bin/env python3
"""
generate_prompt - Compile a prompt from a YAML or JSON input file.

Reads a mapping of InputRecord fields (or, with --batch, a list of them)
and prints the compiled prompt. With --json the full output package
(prompt, metadata, canonical input) is printed instead.

Usage:
    promptstitch-generate input.yaml
    promptstitch-generate input.yaml --json
    promptstitch-generate inputs.yaml --batch
    promptstitch-generate input.yaml --variants 3
    promptstitch-generate input.yaml --template house-style --strict
    cat input.json | promptstitch-generate -

Exit codes:
    0  success
    1  a PromptStitchError (missing task description, strict template
       failure, or a failed batch item or variant)
    2  unreadable or malformed input file
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, List, Optional

import yaml

from promptstitch.compiler.engine import DEFAULT_VARIANT_COUNT, PromptEngine
from promptstitch.config.runtime_config import get_engine_config
from promptstitch.errors import PromptStitchError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_COMPILE_ERROR = 1
EXIT_BAD_INPUT = 2


class InputFileError(Exception):
    """The input file could not be read or has the wrong shape."""


def load_input(source: str) -> Any:
    """Load YAML or JSON from a path, or from stdin when source is "-"."""
    try:
        if source == "-":
            return yaml.safe_load(sys.stdin.read())
        with Path(source).open(encoding="utf-8") as f:
            return yaml.safe_load(f)
    except OSError as e:
        raise InputFileError(f"Cannot read {source}: {e}") from e
    except yaml.YAMLError as e:
        raise InputFileError(f"Cannot parse {source}: {e}") from e


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promptstitch-generate",
        description="Compile structured input into a versioned LLM prompt",
    )
    parser.add_argument("input", help="YAML or JSON input file ('-' for stdin)")
    parser.add_argument("--json", action="store_true", help="Print the full output package as JSON")
    parser.add_argument("--batch", action="store_true", help="Input is a list of records")
    parser.add_argument(
        "--variants",
        type=int,
        metavar="N",
        nargs="?",
        const=DEFAULT_VARIANT_COUNT,
        help=f"Generate N A/B variants instead of one prompt (default {DEFAULT_VARIANT_COUNT})",
    )
    parser.add_argument("--template", metavar="NAME", help="Custom template to try first")
    parser.add_argument("--strict", action="store_true", help="Fail instead of falling back when the template is unusable")
    parser.add_argument("--user-id", default=None, help="User id recorded on the prompt_generated event")
    parser.add_argument("--session-id", default=None, help="Session id recorded on the prompt_generated event")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log corrections and debug detail")
    return parser


def run(args: argparse.Namespace, engine: Optional[PromptEngine] = None) -> int:
    try:
        data = load_input(args.input)
    except InputFileError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_BAD_INPUT

    if args.batch:
        if not isinstance(data, list):
            print("Error: --batch input must be a list of mappings", file=sys.stderr)
            return EXIT_BAD_INPUT
    elif not isinstance(data, dict):
        print("Error: input must be a mapping of field names to values", file=sys.stderr)
        return EXIT_BAD_INPUT

    if engine is None:
        config = get_engine_config()
        if args.strict:
            config = replace(config, strict_templates=True)
        engine = PromptEngine(config=config)

    try:
        if args.batch:
            report = engine.batch_generate(data, custom_template=args.template)
            if args.json:
                _print_json(report.to_dict())
            else:
                for result in report:
                    print(f"### {result.input_id}\n{result.prompt}\n")
            for error in report.errors:
                print(f"Error: item {error.item_id}: {error.message}", file=sys.stderr)
            return EXIT_OK if report.ok else EXIT_COMPILE_ERROR

        if args.variants is not None:
            variants = engine.generate_variants(data, args.variants)
            if args.json:
                _print_json(variants.to_dict())
            else:
                for variant in variants:
                    print(f"### {variant.label} ({variant.mutation_type})\n{variant.output.prompt}\n")
            for error in variants.errors:
                print(f"Error: variant {error.item_id}: {error.message}", file=sys.stderr)
            return EXIT_OK if not variants.errors else EXIT_COMPILE_ERROR

        output = engine.generate_prompt(data, args.user_id, args.session_id, custom_template=args.template)
    except PromptStitchError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_COMPILE_ERROR

    if args.json:
        _print_json(output.to_dict())
    else:
        print(output.prompt)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint for prompt generation."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    return run(args)


if __name__ == "__main__":
    sys.exit(main())

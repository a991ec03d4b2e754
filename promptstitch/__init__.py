"""
promptstitch - Deterministic prompt compiler.

Turns structured, partially-specified user intent into a versioned,
tier-appropriate prompt for a large language model.

Usage:
    from promptstitch.compiler import PromptEngine

    output = PromptEngine().generate_prompt({"task_description": "summarize the Q3 report"})
"""

__version__ = "1.0.0"

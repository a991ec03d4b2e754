"""
errors.py - Exception types raised by the prompt compilation pipeline.

Only a handful of conditions ever reject a request. Everything else
(out-of-vocabulary values, over-length strings, tier violations) is
auto-corrected by the canonicalizer and tier gate and reported as a
logged warning instead.
"""

from __future__ import annotations

from typing import Optional, Sequence


class PromptStitchError(Exception):
    """Base exception for prompt compilation errors."""

    pass


class MissingRequiredFieldError(PromptStitchError):
    """Raised when an essential input field is absent or blank."""

    def __init__(self, field_name: str, detail: Optional[str] = None):
        self.field_name = field_name
        msg = f"Required field '{field_name}' is missing or blank"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class UnsupportedOperatorError(PromptStitchError):
    """Raised when a mutation operator name is not recognised."""

    def __init__(self, operator: str, supported: Sequence[str] = ()):
        self.operator = operator
        self.supported = tuple(supported)
        msg = f"Unsupported mutation operator: '{operator}'"
        if self.supported:
            msg += f". Supported: {', '.join(self.supported)}"
        super().__init__(msg)


class TemplateAccessError(PromptStitchError):
    """Raised in strict mode when a custom template cannot be used.

    Either the template is not registered (required_tier is None) or the
    record's tier ranks below the template's required tier.
    """

    def __init__(self, template_name: str, tier: str, required_tier: Optional[str] = None):
        self.template_name = template_name
        self.tier = tier
        self.required_tier = required_tier
        if required_tier is None:
            msg = f"Custom template '{template_name}' is not registered"
        else:
            msg = (
                f"Tier '{tier}' is insufficient for custom template "
                f"'{template_name}' (requires '{required_tier}')"
            )
        super().__init__(msg)


class TemplateRenderError(PromptStitchError):
    """Raised when a custom template's renderer fails or returns a non-string."""

    def __init__(self, template_name: str, cause: BaseException):
        self.template_name = template_name
        self.cause = cause
        super().__init__(
            f"Custom template '{template_name}' failed to render: {type(cause).__name__}: {cause}"
        )


class RegistryValidationError(PromptStitchError):
    """Raised when a vocabulary or template registration is rejected."""

    def __init__(self, registry: str, message: str):
        self.registry = registry
        super().__init__(f"{registry}: {message}")

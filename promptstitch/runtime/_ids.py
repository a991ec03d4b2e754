"""ID generators for prompt versions, batch items, and events.

Identifiers are random and carry no content. Content identity comes
from the input hash (see compiler/versioning.py).
"""

from __future__ import annotations

import secrets
import string
import uuid

_BATCH_ALPHABET = string.ascii_lowercase + string.digits


def generate_version_id() -> str:
    """Generate a random version identifier (UUID4)."""
    return str(uuid.uuid4())


def generate_event_id() -> str:
    """Generate a globally unique event ID."""
    return str(uuid.uuid4())


def generate_batch_id() -> str:
    """Generate an identifier for a batch item that arrived without one.

    Creates IDs in the format: batch_xxxxxxxxx
    where the suffix is 9 random base-36 characters.

    Example:
        >>> generate_batch_id()  # e.g., "batch_k3v9q0a1z"
    """
    suffix = "".join(secrets.choice(_BATCH_ALPHABET) for _ in range(9))
    return f"batch_{suffix}"

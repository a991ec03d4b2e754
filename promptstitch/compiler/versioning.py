"""
versioning.py - Content hashing and version metadata.

Two identities are attached to every compiled record:

- input_hash: SHA-256 over a stable serialization of the record's field
  values. Equal records always hash equal, across processes.
- version_id: a random identifier, distinct on every call even when the
  record is unchanged.

Serialization is a compact JSON array of the field values in declaration
order: tuple fields become nested arrays, booleans render as true/false,
None as null. Strings are JSON-quoted, so a "|" or "," inside a value can
never shift a field or list boundary.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime
from typing import Callable, Optional

from promptstitch.runtime._ids import generate_version_id
from promptstitch.runtime._time import datetime_to_iso, utc_now

from .types import INPUT_FIELD_NAMES, InputRecord, VersionMetadata

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_VERSION = "3.2"
DEFAULT_ENGINE_VERSION = "1.0.0"

def _serialize_value(value):
    if isinstance(value, (tuple, list)):
        return [_serialize_value(v) for v in value]
    return value


def serialize_for_hash(record: InputRecord) -> str:
    """Stable, order-preserving serialization of a record's field values."""
    values = [_serialize_value(getattr(record, name)) for name in INPUT_FIELD_NAMES]
    return json.dumps(values, ensure_ascii=False, separators=(",", ":"))


def hash_input(record: InputRecord) -> str:
    """SHA-256 hex digest of serialize_for_hash(record)."""
    return hashlib.sha256(serialize_for_hash(record).encode("utf-8")).hexdigest()


class Versioner:
    """Stamps records with version metadata.

    The id factory and clock are injectable so tests can pin identifiers
    and timestamps.
    """

    def __init__(
        self,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        template_version: str = DEFAULT_TEMPLATE_VERSION,
        engine_version: str = DEFAULT_ENGINE_VERSION,
    ):
        self.id_factory = id_factory or generate_version_id
        self.clock = clock or utc_now
        self.template_version = template_version
        self.engine_version = engine_version

    def version(self, record: InputRecord, parent_version_id: Optional[str] = None) -> VersionMetadata:
        input_hash = hash_input(record)
        metadata = VersionMetadata(
            version_id=self.id_factory(),
            created_at=datetime_to_iso(self.clock()),
            input_hash=input_hash,
            template_version=self.template_version,
            engine_version=self.engine_version,
            parent_version_id=parent_version_id,
        )
        logger.debug("Versioned %s as %s (hash %s)", metadata.content_id, metadata.version_id, input_hash[:16])
        return metadata

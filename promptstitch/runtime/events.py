"""
events.py - Fire-and-forget structured event sinks.

The compilation pipeline reports what it did (prompt generated, input
corrected, upgrade prompted) as EngineEvents. Sinks are pluggable:

- NullEventSink: discards everything
- LoggingEventSink: writes one JSON line per event to a logger
- JsonlEventSink: appends events to a JSONL file
- RecordingEventSink: keeps events in memory (tests, notebooks)

Event delivery is never allowed to fail a request. Callers go through
emit_safely(), which logs and drops any sink failure.

Usage:
    from promptstitch.runtime.events import EngineEvent, JsonlEventSink, emit_safely

    sink = JsonlEventSink(Path(".promptstitch/events.jsonl"))
    emit_safely(sink, EngineEvent(kind="prompt_generated", payload={...}))
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from ._ids import generate_event_id
from ._time import datetime_to_iso, iso_to_datetime, utc_now

logger = logging.getLogger(__name__)

# Standard event kinds
PROMPT_GENERATED = "prompt_generated"
INPUT_CORRECTED = "input_corrected"
UPGRADE_PROMPTED = "upgrade_prompted"
BATCH_GENERATED = "batch_generated"
VARIANTS_GENERATED = "variants_generated"


@dataclass
class EngineEvent:
    """A single observable occurrence in the pipeline.

    Attributes:
        kind: Event type. Standard types include:
              - "prompt_generated": one prompt compiled for a user/session
              - "input_corrected": a field was replaced by its fallback value
              - "upgrade_prompted": a tier-gated capability was denied
              - "batch_generated", "variants_generated": summary events
        ts: Timestamp of the event.
        event_id: Globally unique identifier for this event.
        payload: Event-specific data.
    """

    kind: str
    ts: datetime = field(default_factory=utc_now)
    event_id: str = field(default_factory=generate_event_id)
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "kind": self.kind,
            "ts": datetime_to_iso(self.ts),
            "payload": dict(self.payload),
        }


def engine_event_from_dict(data: Dict[str, Any]) -> EngineEvent:
    """Parse an EngineEvent from a dictionary (e.g., one JSONL line)."""
    return EngineEvent(
        kind=data["kind"],
        ts=iso_to_datetime(data.get("ts")) or utc_now(),
        event_id=data.get("event_id") or generate_event_id(),
        payload=data.get("payload", {}),
    )


class EventSink(Protocol):
    """Anything that accepts EngineEvents."""

    def emit(self, event: EngineEvent) -> None:
        ...


class NullEventSink:
    """Sink that drops every event."""

    def emit(self, event: EngineEvent) -> None:
        return None


class LoggingEventSink:
    """Sink that writes events as JSON to a logger at INFO level."""

    def __init__(self, event_logger: Optional[logging.Logger] = None):
        self._logger = event_logger or logging.getLogger("promptstitch.events")

    def emit(self, event: EngineEvent) -> None:
        self._logger.info("%s", json.dumps(event.to_dict(), ensure_ascii=False, default=str))


class RecordingEventSink:
    """Sink that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: List[EngineEvent] = []

    def emit(self, event: EngineEvent) -> None:
        self.events.append(event)

    def kinds(self) -> List[str]:
        return [e.kind for e in self.events]

    def of_kind(self, kind: str) -> List[EngineEvent]:
        return [e for e in self.events if e.kind == kind]


class JsonlEventSink:
    """Append-only JSONL event log.

    Appends are serialised with a lock so concurrent requests never
    interleave partial lines. I/O and serialisation failures are logged
    and dropped.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def emit(self, event: EngineEvent) -> None:
        with self._lock:
            try:
                line = json.dumps(event.to_dict(), ensure_ascii=False)
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
                    f.flush()
            except (OSError, IOError) as e:
                logger.warning("Failed to append event %s to %s: %s", event.kind, self.path, e)
            except (TypeError, ValueError) as e:
                logger.warning("Failed to serialize event %s: %s", event.kind, e)

    def read_events(self) -> List[EngineEvent]:
        """Read back every event in the log, skipping malformed lines."""
        if not self.path.exists():
            return []
        events: List[EngineEvent] = []
        with open(self.path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(engine_event_from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError) as e:
                    logger.warning("Skipping malformed event at %s:%d: %s", self.path, lineno, e)
        return events


def emit_safely(sink: Optional[EventSink], event: EngineEvent) -> None:
    """Deliver an event without ever raising.

    Event logging is non-critical: a broken sink must not fail prompt
    generation.
    """
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception as e:  # noqa: BLE001 - sinks are third-party collaborators
        logger.warning("Event sink %s failed for %s: %s", type(sink).__name__, event.kind, e)


def create_event_sink(kind: str, path: Optional[Path] = None) -> EventSink:
    """Build a sink from its configured name ("none", "logging", "jsonl")."""
    kind = (kind or "none").strip().lower()
    if kind == "jsonl":
        if path is None:
            raise ValueError("jsonl event sink requires a path")
        return JsonlEventSink(path)
    if kind == "logging":
        return LoggingEventSink()
    if kind != "none":
        logger.warning("Unknown event sink '%s'; events will be dropped", kind)
    return NullEventSink()

"""
promptstitch/runtime - Ambient runtime support: identifiers, time, events.
"""

from .events import (
    EngineEvent,
    EventSink,
    JsonlEventSink,
    LoggingEventSink,
    NullEventSink,
    RecordingEventSink,
    create_event_sink,
    emit_safely,
)

__all__ = [
    "EngineEvent",
    "EventSink",
    "JsonlEventSink",
    "LoggingEventSink",
    "NullEventSink",
    "RecordingEventSink",
    "create_event_sink",
    "emit_safely",
]

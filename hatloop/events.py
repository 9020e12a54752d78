"""
HATLOOP Events

Events are append-only facts: a topic, when it happened, which hat
published it, and an optional payload. They come from two places:
  - extract_event() pulling a declared token out of agent output
  - EventBus.emit() for events injected from outside (e.g. `hatloop emit`)

Routing treats both the same way.
"""

from __future__ import annotations

import json
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from hatloop.errors import EventEmitError

LOOP_COMPLETE = "LOOP_COMPLETE"

_EVENT_TOKEN = re.compile(r"EVENT:\s*(\S+)", re.IGNORECASE)


def extract_event(output: str, completion_marker: str = LOOP_COMPLETE) -> str | None:
    """Find the topic an agent declared in its output.

    The completion marker wins outright, anywhere in the text and in any case.
    Otherwise the last `EVENT: <token>` is taken, since agents often narrate
    intermediate events before settling on a final one.
    """
    if not output:
        return None

    if completion_marker and completion_marker.lower() in output.lower():
        return LOOP_COMPLETE

    tokens = _EVENT_TOKEN.findall(output)
    return tokens[-1] if tokens else None


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------

class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    topic: str
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    hat_id: str | None = None
    payload: str | dict[str, Any] | list[Any] | None = None

    @field_validator("topic")
    @classmethod
    def _topic_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("event topic must be a non-empty string")
        return v.strip()


def parse_payload(message: str | None, as_json: bool = False) -> str | dict | list | None:
    """Turn a CLI message into an event payload."""
    if message is None or message == "":
        return None
    if not as_json:
        return message
    try:
        return json.loads(message)
    except json.JSONDecodeError as e:
        raise EventEmitError(f"Failed to parse JSON payload: {e}") from e


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------

EventHandler = Callable[[Event], None]


class EventBus:
    """A lightweight, synchronous event bus with an append-only history."""

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = {}
        self._history: list[Event] = []

    def subscribe(self, callback: EventHandler) -> Callable[[], None]:
        """Register a callback for every event."""
        return self.on("*", callback)

    def on(self, topic: str, callback: EventHandler) -> Callable[[], None]:
        """Register a callback for one topic ("*" for all). Returns an unsubscribe function."""
        handlers = self._handlers.setdefault(topic, [])
        handlers.append(callback)

        def unsubscribe() -> None:
            if callback in handlers:
                handlers.remove(callback)

        return unsubscribe

    def emit(self, topic: str, hat_id: str | None = None, payload: Any = None) -> Event:
        """Construct, record and broadcast an event."""
        if not topic or not topic.strip():
            raise EventEmitError("Event topic must not be empty")
        return self.record(Event(topic=topic, hat_id=hat_id, payload=payload))

    def record(self, event: Event) -> Event:
        self._history.append(event)
        logger.debug(f"[EVENTS] {event.topic} (hat={event.hat_id or '-'})")

        for handler in [*self._handlers.get(event.topic, []), *self._handlers.get("*", [])]:
            try:
                handler(event)
            except Exception as e:
                # A broken subscriber must not take the loop down with it.
                logger.warning(f"[EVENTS] Subscriber failed on {event.topic}: {e}")
        return event

    def history(self, topic: str | None = None) -> list[Event]:
        if topic:
            return [e for e in self._history if e.topic == topic]
        return list(self._history)

    def last(self) -> Event | None:
        return self._history[-1] if self._history else None

    def __len__(self) -> int:
        return len(self._history)

    def to_jsonl(self) -> str:
        return "\n".join(e.model_dump_json() for e in self._history)


# ---------------------------------------------------------------------------
# events.jsonl persistence
# ---------------------------------------------------------------------------

def append_jsonl(path: Path, event: Event) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(event.model_dump_json() + "\n")


def load_jsonl(path: Path) -> list[Event]:
    if not path.exists():
        return []
    events: list[Event] = []
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                events.append(Event.model_validate_json(line))
            except ValueError as e:
                logger.warning(f"[EVENTS] Skipping malformed line {lineno} in {path}: {e}")
    return events

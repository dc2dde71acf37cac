"""ComplianceEventBus - in-process delivery of compliance signals.

Implements IEventSink. Every emitted event is kept in a bounded history
(for the API and tests) and fanned out to subscribers registered for its
name or for all events.

Events delivered:
- compliance_checked   - after every check, with the action and aggregate result
- compliance_alert     - alert response executed for a violation
- compliance_block     - block response executed for a violation

A subscriber that raises is logged and skipped; emit() never raises, so a
broken listener cannot fail a compliance check.
"""

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from aumos_compliance_engine.core.models import utc_now
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)

EventListener = Callable[[str, dict[str, Any]], None]

_ALL_EVENTS = "*"


@dataclass(frozen=True)
class EmittedEvent:
    """One delivered compliance signal."""

    name: str
    payload: dict[str, Any]
    emitted_at: datetime = field(default_factory=utc_now)


class ComplianceEventBus:
    """In-process IEventSink with subscriber fan-out.

    Args:
        history_size: Number of recent events retained by ``history``.
    """

    def __init__(self, history_size: int = 1000) -> None:
        self._history: deque[EmittedEvent] = deque(maxlen=history_size)
        self._listeners: dict[str, list[EventListener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, listener: EventListener, event_name: str = _ALL_EVENTS) -> None:
        """Register a listener for one event name, or for every event by default."""
        with self._lock:
            self._listeners.setdefault(event_name, []).append(listener)

    def unsubscribe(self, listener: EventListener, event_name: str = _ALL_EVENTS) -> bool:
        with self._lock:
            listeners = self._listeners.get(event_name, [])
            if listener not in listeners:
                return False
            listeners.remove(listener)
            return True

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        event = EmittedEvent(name=event_name, payload=payload)
        with self._lock:
            self._history.append(event)
            listeners = [*self._listeners.get(event_name, []), *self._listeners.get(_ALL_EVENTS, [])]

        logger.debug("Compliance event emitted", event_name=event_name, listeners=len(listeners))

        for listener in listeners:
            try:
                listener(event_name, payload)
            except Exception as exc:
                logger.error(
                    "Compliance event listener failed",
                    event_name=event_name,
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(exc),
                )

    def history(self, event_name: str | None = None) -> list[EmittedEvent]:
        """Return retained events, oldest first, optionally for one name."""
        with self._lock:
            events = list(self._history)
        if event_name is not None:
            events = [e for e in events if e.name == event_name]
        return events

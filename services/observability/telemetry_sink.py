# services/observability/telemetry_sink.py

from __future__ import annotations

import json
import logging
from threading import Lock
from typing import List, Protocol

from services.observability.telemetry_event import TelemetryEvent


logger = logging.getLogger("telemetry")


class TelemetrySink(Protocol):
    def emit(self, event: TelemetryEvent) -> None: ...


class LoggingTelemetrySink:
    """
    Default sink – one structured JSON line per event on the telemetry logger.
    """

    def emit(self, event: TelemetryEvent) -> None:
        logger.info("[TELEMETRY] %s", json.dumps(event.to_dict(), ensure_ascii=False, default=str))


class InMemoryTelemetrySink:
    """Keeps events in memory (tests, debugging endpoints)."""

    def __init__(self) -> None:
        self._events: List[TelemetryEvent] = []
        self._lock = Lock()

    def emit(self, event: TelemetryEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[TelemetryEvent]:
        with self._lock:
            return list(self._events)

    def event_types(self) -> List[str]:
        return [e.event_type for e in self.events]

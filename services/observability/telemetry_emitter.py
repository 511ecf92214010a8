# services/observability/telemetry_emitter.py

import logging
from typing import Any, Dict, Optional

from services.observability.telemetry_event import TelemetryEvent
from services.observability.telemetry_sink import LoggingTelemetrySink, TelemetrySink

logger = logging.getLogger(__name__)


class TelemetryEmitter:
    """
    Passive telemetry emitter.

    RULES:
    - telemetry errors NEVER break the approval workflow
    - telemetry errors are ALWAYS visible
    - no silent failures
    """

    def __init__(self, sink: Optional[TelemetrySink] = None):
        self.sink = sink or LoggingTelemetrySink()

    # -------------------------------------------------
    # GENERIC EMIT (HARDENED)
    # -------------------------------------------------
    def emit(self, event: TelemetryEvent) -> None:
        try:
            self.sink.emit(event)
        except Exception as e:
            logger.error(
                "TELEMETRY EMIT FAILED | event_type=%s | error=%s",
                getattr(event, "event_type", "unknown"),
                str(e),
            )

    # -------------------------------------------------
    # APPROVAL WORKFLOW
    # -------------------------------------------------
    def emit_approval_event(
        self,
        event_type: str,
        request: Any,
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        event_type: approval_requested | approval_responded | approval_resolved
                    | approval_expired | action_executed | action_execution_failed
        """
        payload: Dict[str, Any] = {
            "status": getattr(getattr(request, "status", None), "value", None),
            "action_type": getattr(request, "action_type", None),
            "affected_user_ids": list(getattr(request, "affected_user_ids", []) or []),
        }
        payload.update(details or {})

        self.emit(
            TelemetryEvent.now(
                event_type=event_type,
                user_id=getattr(request, "user_id", None),
                request_id=getattr(request, "id", None),
                action_id=getattr(request, "action_id", None),
                payload=payload,
            )
        )

    # -------------------------------------------------
    # POLICY DECISIONS
    # -------------------------------------------------
    def emit_decision(self, *, user_id: str, decision: Any, outcome: str) -> None:
        self.emit(
            TelemetryEvent.now(
                event_type="autonomy_decision",
                user_id=user_id,
                action_id=getattr(decision, "action_id", None),
                payload={
                    "outcome": outcome,
                    "capability": getattr(decision, "capability", None),
                    "autonomy_level": getattr(decision, "autonomy_level", None),
                    "required_level": getattr(decision, "required_level", None),
                    "confidence": getattr(decision, "confidence", None),
                },
            )
        )

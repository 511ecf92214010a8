# services/observability/telemetry_event.py

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class TelemetryEvent:
    """
    Canonical telemetry event.

    - approval workflow visibility (requested / responded / resolved / executed)
    - audit-grade event structure
    - delivery to people (notifications) is a downstream consumer concern
    """

    ts: float
    event_type: str

    user_id: Optional[str] = None
    request_id: Optional[str] = None
    action_id: Optional[str] = None

    # structured payload
    payload: Dict[str, Any] = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        # Ensure payload is always a dict to simplify downstream consumers.
        object.__setattr__(self, "payload", self.payload or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts,
            "event_type": self.event_type,
            "user_id": self.user_id,
            "request_id": self.request_id,
            "action_id": self.action_id,
            "payload": self.payload,
        }

    # -------------------------------------------------
    # FACTORY
    # -------------------------------------------------
    @staticmethod
    def now(
        *,
        event_type: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        action_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> "TelemetryEvent":
        return TelemetryEvent(
            ts=time.time(),
            event_type=event_type,
            user_id=user_id,
            request_id=request_id,
            action_id=action_id,
            payload=payload,
        )

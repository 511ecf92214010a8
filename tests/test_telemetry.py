from __future__ import annotations

import logging

from models.action_proposal import ActionProposal
from models.autonomy_settings import AutonomySettings
from services.autonomy.policy_config import AutonomyPolicyConfig
from services.autonomy.policy_layer import AutonomyPolicy
from services.autonomy.threshold_evaluator import evaluate
from services.observability.telemetry_emitter import TelemetryEmitter
from services.observability.telemetry_event import TelemetryEvent
from services.observability.telemetry_sink import InMemoryTelemetrySink, LoggingTelemetrySink


class _BrokenSink:
    def emit(self, event: TelemetryEvent) -> None:
        raise RuntimeError("sink down")


def test_sink_failure_never_breaks_caller(caplog) -> None:
    emitter = TelemetryEmitter(_BrokenSink())
    with caplog.at_level(logging.ERROR):
        emitter.emit(TelemetryEvent.now(event_type="approval_requested"))
    assert "TELEMETRY EMIT FAILED" in caplog.text


def test_logging_sink_writes_json_line(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="telemetry"):
        LoggingTelemetrySink().emit(TelemetryEvent.now(event_type="approval_expired", user_id="u1"))
    assert '"event_type": "approval_expired"' in caplog.text


def test_workflow_events_in_order(approvals, clock, sink: InMemoryTelemetrySink) -> None:
    proposal = ActionProposal(
        user_id="owner", action_type="create_task", risk_level="critical", confidence=0.9
    )
    settings = AutonomySettings(user_id="owner")
    decision = AutonomyPolicy(AutonomyPolicyConfig()).decide(
        proposal, settings, evaluate(proposal, settings, clock())
    )
    r = approvals.create(proposal, decision)
    approvals.respond(r.id, "owner", "approve")
    approvals.execute(r.id)
    assert sink.event_types() == [
        "approval_requested",
        "approval_responded",
        "approval_resolved",
        "action_executed",
    ]

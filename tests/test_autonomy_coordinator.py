from __future__ import annotations

import threading
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from models.approval_request import ApprovalStatus
from models.decision_record import DecisionOutcome
from services.autonomy.errors import (
    ExecutionFailure,
    InvalidStateTransitionError,
    NotAuthorizedError,
    PolicyBlockedError,
    ValidationError,
)


def _proposal(**kw):
    base = {
        "user_id": "owner",
        "action_type": "schedule_meeting",
        "risk_level": "low",
        "confidence": 0.9,
    }
    base.update(kw)
    return base


def test_trusted_low_risk_action_runs_immediately(coordinator, executor) -> None:
    coordinator.update_settings("owner", {"capabilities": {"scheduling": 80}})

    out = coordinator.propose_action(_proposal(action_id="a-1", parameters={"at": "10:00"}))
    assert out.outcome == DecisionOutcome.EXECUTED
    assert out.decision.can_execute is True
    assert out.execution.ok is True
    assert out.approval_request is None
    assert executor.calls[0]["parameters"] == {"at": "10:00"}

    (rec,) = coordinator.get_action_history("owner")
    assert rec.action_id == "a-1"
    assert rec.outcome == DecisionOutcome.EXECUTED
    assert rec.autonomy_level == 80


def test_critical_action_opens_approval_request(coordinator, executor) -> None:
    coordinator.update_settings("owner", {"capabilities": {"scheduling": 80}})

    out = coordinator.propose_action(_proposal(risk_level="critical"))
    assert out.outcome == DecisionOutcome.APPROVAL_REQUESTED
    assert "required for critical risk" in out.decision.approval_reason
    assert out.approval_request.status == ApprovalStatus.PENDING
    assert executor.calls == []

    (pending,) = coordinator.list_pending_approvals("owner")
    assert pending.id == out.approval_request.id


def test_financial_threshold_gates_fully_trusted_capability(coordinator) -> None:
    coordinator.update_settings("owner", {"capabilities": {"scheduling": 100}})
    out = coordinator.propose_action(_proposal(financial_amount=50))
    assert out.decision.requires_approval is True
    assert "Financial commitment of $50.00" in out.decision.approval_reason


def test_blocked_action_is_logged_and_raised(coordinator, clock, executor) -> None:
    clock.now = datetime(2026, 3, 4, 23, 30, tzinfo=timezone.utc)
    coordinator.update_settings(
        "owner", {"capabilities": {"scheduling": 100}, "sleep_hours_override": True}
    )

    with pytest.raises(PolicyBlockedError) as exc:
        coordinator.propose_action(_proposal(action_id="late-1"))
    assert exc.value.decision.blocked_windows == ["sleep_hours"]
    assert executor.calls == []
    assert coordinator.list_pending_approvals("owner") == []

    (rec,) = coordinator.get_action_history("owner")
    assert rec.outcome == DecisionOutcome.BLOCKED
    assert rec.reason == "Blocked by sleep hours override"


def test_schedule_timezone_is_honoured(coordinator, clock) -> None:
    try:
        ZoneInfo("Asia/Tokyo")
    except ZoneInfoNotFoundError:
        pytest.skip("tz database not available")

    # 14:00 UTC is 23:00 in Tokyo
    coordinator.update_settings("owner", {"sleep_hours_override": True})
    coordinator.set_schedule("owner", {"timezone": "Asia/Tokyo"})
    with pytest.raises(PolicyBlockedError):
        coordinator.propose_action(_proposal())


def test_executor_failure_is_reported_not_raised(coordinator, executor) -> None:
    coordinator.update_settings("owner", {"capabilities": {"scheduling": 80}})
    executor.fail_with = "calendar offline"

    out = coordinator.propose_action(_proposal())
    assert out.outcome == DecisionOutcome.EXECUTION_FAILED
    assert out.execution.ok is False
    assert out.execution.error == "calendar offline"


def test_duplicate_action_id_is_rejected(coordinator, executor) -> None:
    coordinator.update_settings("owner", {"capabilities": {"scheduling": 80}})
    coordinator.propose_action(_proposal(action_id="dup"))
    with pytest.raises(ValidationError):
        coordinator.propose_action(_proposal(action_id="dup"))
    assert len(executor.calls) == 1


def test_duplicate_submitted_while_first_executes_is_not_run(
    coordinator, executor, monkeypatch
) -> None:
    coordinator.update_settings("owner", {"capabilities": {"scheduling": 80}})
    entered, release = threading.Event(), threading.Event()
    run = executor.execute

    def held(**kwargs):
        entered.set()
        release.wait(5)
        return run(**kwargs)

    monkeypatch.setattr(executor, "execute", held)

    first = []
    t = threading.Thread(
        target=lambda: first.append(coordinator.propose_action(_proposal(action_id="dup")))
    )
    t.start()
    assert entered.wait(5)
    try:
        with pytest.raises(ValidationError, match="already proposed"):
            coordinator.propose_action(_proposal(action_id="dup"))
    finally:
        release.set()
        t.join(5)

    assert len(executor.calls) == 1
    assert first[0].outcome == DecisionOutcome.EXECUTED
    (rec,) = coordinator.get_action_history("owner")
    assert rec.outcome == DecisionOutcome.EXECUTED


def test_duplicate_approval_proposal_opens_no_second_request(coordinator) -> None:
    out = coordinator.propose_action(_proposal(action_id="crit-dup", risk_level="critical"))
    with pytest.raises(ValidationError):
        coordinator.propose_action(_proposal(action_id="crit-dup", risk_level="critical"))

    assert [r.id for r in coordinator.list_pending_approvals("owner")] == [out.approval_request.id]
    (rec,) = coordinator.get_action_history("owner")
    assert rec.outcome == DecisionOutcome.APPROVAL_REQUESTED
    assert rec.request_id == out.approval_request.id


@pytest.mark.parametrize(
    "bad",
    [
        {"confidence": 1.5},
        {"risk_level": "extreme"},
        {"financial_amount": -5},
        {"surprise": True},
        {"user_id": ""},
    ],
)
def test_malformed_proposals_are_rejected(coordinator, bad) -> None:
    with pytest.raises(ValidationError):
        coordinator.propose_action(_proposal(**bad))


def test_multi_party_veto(coordinator) -> None:
    out = coordinator.propose_action(
        _proposal(action_type="send_message", affected_user_ids=["u2", "u3"])
    )
    rid = out.approval_request.id

    coordinator.respond_to_approval(rid, "owner", "approve")
    coordinator.respond_to_approval(rid, "u2", "approve", user_name="Ana")
    final = coordinator.respond_to_approval(rid, "u3", "reject", reasoning="busy")
    assert final.status == ApprovalStatus.REJECTED
    assert final.response_of("u2").user_name == "Ana"


def test_expired_request_cannot_be_approved(coordinator, clock) -> None:
    out = coordinator.propose_action(_proposal(risk_level="critical"), ttl_seconds=3600)
    clock.advance(hours=2)

    assert coordinator.get_approval(out.approval_request.id).status == ApprovalStatus.EXPIRED
    with pytest.raises(InvalidStateTransitionError):
        coordinator.respond_to_approval(out.approval_request.id, "owner", "approve")


def test_execute_approved_action_updates_decision_log(coordinator, executor) -> None:
    out = coordinator.propose_action(_proposal(action_id="crit-1", risk_level="critical"))
    rid = out.approval_request.id
    coordinator.respond_to_approval(rid, "owner", "approve")

    executor.fail_with = "timeout"
    with pytest.raises(ExecutionFailure):
        coordinator.execute_approved_action(rid, user_id="owner")
    assert coordinator.get_action_history("owner")[0].outcome == DecisionOutcome.EXECUTION_FAILED

    executor.fail_with = None
    result = coordinator.execute_approved_action(rid, user_id="owner")
    assert result.ok is True
    (rec,) = coordinator.get_action_history("owner")
    assert rec.outcome == DecisionOutcome.EXECUTED
    assert rec.request_id == rid
    assert coordinator.get_approval(rid).status == ApprovalStatus.EXECUTED


def test_get_approval_restricted_to_participants(coordinator) -> None:
    out = coordinator.propose_action(_proposal(risk_level="critical"))
    rid = out.approval_request.id
    assert coordinator.get_approval(rid, user_id="owner").id == rid
    with pytest.raises(NotAuthorizedError):
        coordinator.get_approval(rid, user_id="stranger")


def test_recommendations_through_facade(coordinator, clock) -> None:
    for _ in range(6):
        clock.advance(minutes=1)
        out = coordinator.propose_action(_proposal(action_type="send_message", risk_level="high"))
        coordinator.respond_to_approval(out.approval_request.id, "owner", "approve")

    (rec,) = coordinator.get_recommendations("owner")
    assert rec.capability == "communication"
    assert rec.suggested_level == 30
    # advisory only
    assert coordinator.get_settings("owner").capabilities["communication"] == 20


def test_action_history_paging(coordinator, clock) -> None:
    coordinator.update_settings("owner", {"capabilities": {"scheduling": 80}})
    for i in range(5):
        clock.advance(minutes=1)
        coordinator.propose_action(_proposal(action_id=f"p-{i}"))

    page = coordinator.get_action_history("owner", limit=2, offset=1)
    assert [r.action_id for r in page] == ["p-3", "p-2"]


def test_settings_history_and_stats(coordinator) -> None:
    coordinator.update_settings("owner", {"financial_threshold": 10})
    (change,) = coordinator.get_settings_history("owner")
    assert change.changes == {"financial_threshold": {"from": 0.0, "to": 10.0}}

    coordinator.propose_action(_proposal(risk_level="critical"))
    stats = coordinator.get_approval_stats("owner")
    assert stats.total == 1
    assert stats.pending == 1

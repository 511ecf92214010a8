from __future__ import annotations

from datetime import datetime, timezone

import pytest

from models.action_proposal import ActionProposal
from models.autonomy_settings import AutonomySettings
from services.autonomy.errors import ValidationError
from services.autonomy.policy_config import AutonomyPolicyConfig
from services.autonomy.policy_layer import AutonomyPolicy
from services.autonomy.threshold_evaluator import evaluate

# Wednesday afternoon
NOW = datetime(2026, 3, 4, 14, 0, tzinfo=timezone.utc)


def _decide(settings: AutonomySettings, now: datetime = NOW, **kw):
    base = {
        "user_id": "u1",
        "action_type": "schedule_meeting",
        "risk_level": "low",
        "confidence": 0.9,
    }
    base.update(kw)
    proposal = ActionProposal(**base)
    policy = AutonomyPolicy(AutonomyPolicyConfig())
    return policy.decide(proposal, settings, evaluate(proposal, settings, now))


def _settings(**kw) -> AutonomySettings:
    return AutonomySettings(user_id="u1", **kw)


def test_trusted_low_risk_executes_unattended() -> None:
    d = _decide(_settings(capabilities={"scheduling": 80}))
    assert d.can_execute is True
    assert d.requires_approval is False
    assert d.approval_reason is None
    assert d.required_level == 20


def test_critical_risk_needs_approval_below_critical_bar() -> None:
    d = _decide(_settings(capabilities={"scheduling": 80}), risk_level="critical")
    assert d.can_execute is False
    assert d.requires_approval is True
    assert "below the 95 required for critical risk" in d.approval_reason
    assert "Critical risk requires human oversight" in d.risk_assessment.factors


@pytest.mark.parametrize("level", [0, 50, 94])
def test_critical_never_executes_below_bar(level: int) -> None:
    d = _decide(_settings(capabilities={"scheduling": level}), risk_level="critical", confidence=1.0)
    assert d.can_execute is False


def test_financial_threshold_wins_over_full_trust() -> None:
    d = _decide(
        _settings(capabilities={"scheduling": 100}, financial_threshold=0),
        financial_amount=50,
    )
    assert d.requires_approval is True
    assert "Financial commitment of $50.00" in d.approval_reason
    assert d.risk_assessment.impact == "financial"


def test_low_confidence_needs_approval() -> None:
    d = _decide(_settings(capabilities={"scheduling": 100}), confidence=0.2)
    assert d.requires_approval is True
    assert "Confidence 0.20 is below the minimum 0.50" in d.approval_reason


def test_unknown_capability_is_treated_as_level_zero() -> None:
    d = _decide(_settings(), action_type="launch_rocket")
    assert d.capability == "launch_rocket"
    assert d.autonomy_level == 0
    assert d.requires_approval is True


@pytest.mark.parametrize("level,confidence", [(100, 1.0), (0, 0.0), (50, 0.7)])
def test_override_window_blocks_regardless_of_trust(level: int, confidence: float) -> None:
    settings = _settings(capabilities={"scheduling": level}, work_hours_override=True)
    d = _decide(settings, now=datetime(2026, 3, 4, 10, 0, tzinfo=timezone.utc), confidence=confidence)
    assert d.can_execute is False
    assert d.requires_approval is False
    assert d.is_blocked
    assert d.blocked_windows == ["work_hours"]
    assert d.blocked_reason == "Blocked by work hours override"


def test_config_rejects_decreasing_bars() -> None:
    with pytest.raises(ValidationError):
        AutonomyPolicyConfig(risk_bars={"low": 50, "medium": 40, "high": 75, "critical": 95})


def test_config_from_env(monkeypatch) -> None:
    monkeypatch.setenv("AUTONOMY_RISK_BAR_LOW", "10")
    monkeypatch.setenv("APPROVAL_TTL_SECONDS", "3600")
    monkeypatch.setenv("APPROVAL_SWEEPER_ENABLED", "false")
    cfg = AutonomyPolicyConfig.from_env()
    assert cfg.bar_for("low") == 10
    assert cfg.approval_ttl_seconds == 3600
    assert cfg.sweeper_enabled is False

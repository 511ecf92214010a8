from __future__ import annotations

from models.action_proposal import ActionProposal
from models.approval_request import ApprovalStatus
from models.autonomy_settings import AutonomySettings
from models.recommendation import RecommendationType
from services.autonomy.policy_config import AutonomyPolicyConfig
from services.autonomy.policy_layer import AutonomyPolicy
from services.autonomy.recommendation_analyzer import AutonomyRecommendationAnalyzer
from services.autonomy.threshold_evaluator import evaluate

SETTINGS = AutonomySettings(user_id="owner", capabilities={"communication": 20, "scheduling": 95})


def _decided(approvals, clock, responses):
    """Opens one communication request per response and answers it as the owner."""
    for response in responses:
        clock.advance(minutes=1)
        proposal = ActionProposal(
            user_id="owner",
            action_type="send_message",
            risk_level="high",
            confidence=0.9,
        )
        decision = AutonomyPolicy(AutonomyPolicyConfig()).decide(
            proposal, SETTINGS, evaluate(proposal, SETTINGS, clock())
        )
        r = approvals.create(proposal, decision)
        if response == "modify":
            approvals.respond(r.id, "owner", "modify", modifications={"tone": "formal"})
            approvals.respond(r.id, "owner", "approve")
        elif response != "pending":
            approvals.respond(r.id, "owner", response)
    return approvals.history("owner")


def _analyze(requests, **cfg):
    return AutonomyRecommendationAnalyzer(AutonomyPolicyConfig(**cfg)).analyze(SETTINGS, requests)


def test_consistent_approvals_suggest_increase(approvals, clock) -> None:
    history = _decided(approvals, clock, ["approve"] * 10)
    (rec,) = _analyze(history)
    assert rec.type == RecommendationType.INCREASE_AUTONOMY
    assert rec.capability == "communication"
    assert rec.current_level == 20
    assert rec.suggested_level == 30
    assert rec.sample_size == 10
    assert rec.acceptance_rate == 1.0


def test_frequent_rejections_suggest_decrease(approvals, clock) -> None:
    history = _decided(approvals, clock, ["reject"] * 3 + ["approve"] * 7)
    (rec,) = _analyze(history)
    assert rec.type == RecommendationType.DECREASE_AUTONOMY
    assert rec.suggested_level == 0
    assert rec.rejection_rate == 0.3


def test_modified_approvals_do_not_count_as_accepted(approvals, clock) -> None:
    history = _decided(approvals, clock, ["modify"] * 2 + ["approve"] * 8)
    assert _analyze(history) == []


def test_small_sample_gives_no_recommendation(approvals, clock) -> None:
    history = _decided(approvals, clock, ["approve"] * 4 + ["pending"] * 3)
    assert _analyze(history) == []


def test_only_recent_window_counts(approvals, clock) -> None:
    # old rejections fall out of a window of 5
    history = _decided(approvals, clock, ["reject"] * 5 + ["approve"] * 5)
    (rec,) = _analyze(history, recommendation_window=5)
    assert rec.type == RecommendationType.INCREASE_AUTONOMY


def test_expired_requests_dilute_acceptance(approvals, clock) -> None:
    history = _decided(approvals, clock, ["approve"] * 5 + ["pending"] * 2)
    clock.advance(days=2)
    approvals.sweep_expired()
    history = approvals.history("owner")
    assert sum(1 for r in history if r.status == ApprovalStatus.EXPIRED) == 2
    assert _analyze(history) == []


def test_increase_is_capped_at_one_hundred(approvals, clock) -> None:
    history = _decided(approvals, clock, ["approve"] * 6)
    settings = SETTINGS.model_copy(update={"capabilities": {"communication": 95}})
    (rec,) = AutonomyRecommendationAnalyzer(AutonomyPolicyConfig()).analyze(settings, history)
    assert rec.suggested_level == 100

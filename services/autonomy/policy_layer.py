# services/autonomy/policy_layer.py

from __future__ import annotations

from typing import List, Optional

from models.action_proposal import ActionProposal, RiskLevel
from models.autonomy_decision import AutonomyDecision, RiskAssessment
from models.autonomy_settings import AutonomySettings
from services.autonomy.policy_config import AutonomyPolicyConfig, get_policy_config
from services.autonomy.threshold_evaluator import (
    FINANCIAL,
    PEOPLE,
    TIME,
    ThresholdVerdict,
)

_WINDOW_LABELS = {
    "work_hours": "work hours",
    "family_time": "family time",
    "sleep_hours": "sleep hours",
}

_IMPACT_BY_DIMENSION = {FINANCIAL: "financial", TIME: "time", PEOPLE: "social"}

_MITIGATIONS = {
    FINANCIAL: "Consider reducing scope or breaking into smaller actions",
    TIME: "Confirm the time commitment with the owner before booking it",
    PEOPLE: "Notify affected users before execution",
}


# ============================================================
# RISK ASSESSMENT (DATA ONLY)
# ============================================================
def assess_risk(proposal: ActionProposal, verdict: ThresholdVerdict) -> RiskAssessment:
    """
    Declared risk is authoritative; the assessment only explains it.
    """
    factors: List[str] = [b.describe() for b in verdict.breaches]

    others = [u for u in proposal.affected_user_ids if u != proposal.user_id]
    if others and PEOPLE not in verdict.exceeded_dimensions:
        factors.append(f"This action will affect {len(others)} other people")

    if proposal.risk_level == RiskLevel.CRITICAL:
        factors.append("Critical risk requires human oversight")

    impact = "minimal"
    if verdict.breaches:
        impact = _IMPACT_BY_DIMENSION[verdict.breaches[-1].dimension]

    mitigations = [_MITIGATIONS[d] for d in verdict.exceeded_dimensions]
    if proposal.risk_level == RiskLevel.CRITICAL:
        mitigations.append("Execute with immediate oversight and monitoring")

    return RiskAssessment(
        level=proposal.risk_level,
        factors=factors,
        impact=impact,
        mitigation="; ".join(mitigations) or None,
    )


# ============================================================
# AUTONOMY POLICY LAYER (KANONSKI)
# ============================================================
class AutonomyPolicy:
    """
    Deterministic policy layer for autonomy.

    RULES:
    - override windows are absolute (block, never negotiate)
    - magnitude thresholds always win over trust level
    - riskier actions need a higher autonomy level to run unattended
    - no execution, no persistence
    """

    def __init__(self, config: Optional[AutonomyPolicyConfig] = None) -> None:
        self.config = config or get_policy_config()

    def decide(
        self,
        proposal: ActionProposal,
        settings: AutonomySettings,
        verdict: ThresholdVerdict,
    ) -> AutonomyDecision:
        capability = proposal.resolved_capability
        level = settings.level_for(capability)
        bar = self.config.bar_for(proposal.risk_level.value)
        risk = assess_risk(proposal, verdict)

        base = {
            "action_id": proposal.action_id,
            "capability": capability,
            "autonomy_level": level,
            "required_level": bar,
            "confidence": proposal.confidence,
            "risk_assessment": risk,
        }

        # -------------------------------
        # OVERRIDE WINDOW (HARD BLOCK)
        # -------------------------------
        if verdict.blocked_by_override:
            labels = [_WINDOW_LABELS.get(w, w) for w in verdict.blocked_windows]
            return AutonomyDecision(
                can_execute=False,
                requires_approval=False,
                blocked_windows=list(verdict.blocked_windows),
                blocked_reason=f"Blocked by {', '.join(labels)} override",
                **base,
            )

        reasons: List[str] = [b.describe() for b in verdict.breaches]

        if level < bar:
            reasons.append(
                f"Autonomy level {level} for '{capability}' is below the {bar} "
                f"required for {proposal.risk_level.value} risk actions"
            )

        if proposal.confidence < self.config.min_confidence:
            reasons.append(
                f"Confidence {proposal.confidence:.2f} is below the minimum "
                f"{self.config.min_confidence:.2f}"
            )

        # -------------------------------
        # UNATTENDED EXECUTION
        # -------------------------------
        if not reasons:
            return AutonomyDecision(can_execute=True, requires_approval=False, **base)

        return AutonomyDecision(
            can_execute=False,
            requires_approval=True,
            approval_reason=". ".join(reasons),
            **base,
        )

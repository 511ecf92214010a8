from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.action_proposal import RiskLevel


class RiskAssessment(BaseModel):
    level: RiskLevel
    factors: List[str] = Field(default_factory=list)
    impact: str = "minimal"
    mitigation: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class AutonomyDecision(BaseModel):
    """
    Derived verdict for one proposal. Never stored on its own.

    Exactly one of can_execute / requires_approval is True,
    unless the action is hard-blocked (both False).
    """

    action_id: str
    capability: str

    can_execute: bool
    requires_approval: bool
    approval_reason: Optional[str] = None

    autonomy_level: int
    required_level: int
    confidence: float

    risk_assessment: RiskAssessment

    blocked_windows: List[str] = Field(default_factory=list)
    blocked_reason: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_blocked(self) -> bool:
        return not self.can_execute and not self.requires_approval

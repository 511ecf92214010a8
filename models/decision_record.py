from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from models.approval_request import ApprovalRequest, ExecutionResult
from models.autonomy_decision import AutonomyDecision


class DecisionOutcome(str, Enum):
    # claimed by propose_action, not yet acted on
    PENDING = "pending"
    EXECUTED = "executed"
    EXECUTION_FAILED = "execution_failed"
    APPROVAL_REQUESTED = "approval_requested"
    BLOCKED = "blocked"


class DecisionRecord(BaseModel):
    """One row of the decision outcome log."""

    action_id: str
    user_id: str
    action_type: str
    capability: str
    risk_level: str
    confidence: float
    autonomy_level: int
    outcome: DecisionOutcome
    request_id: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(frozen=True)


class ProposalOutcome(BaseModel):
    """What propose_action did with a proposal."""

    decision: AutonomyDecision
    outcome: DecisionOutcome
    approval_request: Optional[ApprovalRequest] = None
    execution: Optional[ExecutionResult] = None

    model_config = ConfigDict(frozen=True)

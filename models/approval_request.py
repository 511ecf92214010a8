from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models.autonomy_decision import AutonomyDecision, RiskAssessment


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    EXECUTED = "executed"


class ResponseType(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    MODIFY = "modify"


# ============================================================
# RESPONSE (ONE PER USER PER REQUEST)
# ============================================================
class ApprovalResponse(BaseModel):
    user_id: str
    user_name: str
    response: ResponseType
    reasoning: Optional[str] = None
    modifications: Optional[Dict[str, Any]] = None
    timestamp: datetime

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def modifications_only_for_modify(self) -> "ApprovalResponse":
        if self.modifications is not None and self.response != ResponseType.MODIFY:
            raise ValueError("modifications are only allowed with a 'modify' response")
        return self


# ============================================================
# APPROVAL REQUEST (WORKFLOW OBJECT)
# ============================================================
class ApprovalRequest(BaseModel):
    id: str
    user_id: str

    # embedded proposal
    action_id: str
    action_type: str
    capability: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    affected_user_ids: List[str] = Field(default_factory=list)
    reasoning: str = ""

    risk_assessment: RiskAssessment
    decision: AutonomyDecision

    status: ApprovalStatus = ApprovalStatus.PENDING
    responses: List[ApprovalResponse] = Field(default_factory=list)

    created_at: datetime
    expires_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    execution_error: Optional[str] = None

    version: int = 0

    model_config = ConfigDict(frozen=True)

    @property
    def required_responders(self) -> List[str]:
        out = [self.user_id]
        for uid in self.affected_user_ids:
            if uid not in out:
                out.append(uid)
        return out

    def response_of(self, user_id: str) -> Optional[ApprovalResponse]:
        for r in self.responses:
            if r.user_id == user_id:
                return r
        return None


class ApprovalStats(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    expired: int = 0
    executed: int = 0
    average_response_seconds: float = 0.0


# ============================================================
# EXECUTION RESULT (FROM THE ACTION EXECUTOR)
# ============================================================
class ExecutionResult(BaseModel):
    ok: bool
    action_id: str
    request_id: Optional[str] = None
    output: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    executed_at: datetime

    model_config = ConfigDict(frozen=True)

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# action_type -> capability key, for producers that only send an action type
ACTION_TYPE_CAPABILITIES: Dict[str, str] = {
    "schedule_meeting": "scheduling",
    "schedule_event": "scheduling",
    "send_message": "communication",
    "organize_files": "fileManagement",
    "create_task": "taskCreation",
    "analyze_data": "dataAnalysis",
    "cross_module_action": "crossModuleActions",
}


class ActionProposal(BaseModel):
    """
    CANONICAL ACTION PROPOSAL

    Produced by the reasoning layer, immutable once submitted.
    Risk and confidence arrive already scored.
    """

    action_id: str = Field(default_factory=lambda: f"action_{uuid.uuid4().hex}")
    user_id: str = Field(min_length=1)

    action_type: str = Field(min_length=1)
    capability: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)

    risk_level: RiskLevel
    confidence: float
    affected_user_ids: List[str] = Field(default_factory=list)
    reasoning: str = ""

    # Magnitudes checked against the owner's thresholds
    financial_amount: Optional[float] = Field(default=None, ge=0)
    estimated_minutes: Optional[int] = Field(default=None, ge=0)
    people_affected: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        # Out-of-range confidence is a producer bug; never clamp it.
        if not 0.0 <= v <= 1.0:
            raise ValueError("confidence must be within [0, 1]")
        return v

    @field_validator("affected_user_ids")
    @classmethod
    def dedupe_affected(cls, v: List[str]) -> List[str]:
        seen: List[str] = []
        for uid in v:
            uid = (uid or "").strip()
            if uid and uid not in seen:
                seen.append(uid)
        return seen

    @property
    def resolved_capability(self) -> str:
        if self.capability:
            return self.capability
        return ACTION_TYPE_CAPABILITIES.get(self.action_type, self.action_type)

    @property
    def people_count(self) -> int:
        return max(len(self.affected_user_ids), self.people_affected or 0)

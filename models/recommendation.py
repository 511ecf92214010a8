from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class RecommendationType(str, Enum):
    INCREASE_AUTONOMY = "increase_autonomy"
    DECREASE_AUTONOMY = "decrease_autonomy"


class AutonomyRecommendation(BaseModel):
    """Advisory only. Never persisted, never applied automatically."""

    type: RecommendationType
    capability: str
    reason: str
    current_level: int
    suggested_level: int

    sample_size: int
    acceptance_rate: float
    rejection_rate: float

    model_config = ConfigDict(frozen=True)

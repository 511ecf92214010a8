from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================
# CAPABILITIES (KNOWN KEYS + SYSTEM DEFAULTS)
# ============================================================
DEFAULT_CAPABILITY_LEVELS: Dict[str, int] = {
    "scheduling": 30,
    "communication": 20,
    "fileManagement": 40,
    "taskCreation": 30,
    "dataAnalysis": 60,
    "crossModuleActions": 20,
}

MIN_LEVEL = 0
MAX_LEVEL = 100


def clamp_level(value: int) -> int:
    return max(MIN_LEVEL, min(MAX_LEVEL, int(value)))


# ============================================================
# AUTONOMY SETTINGS (IMMUTABLE VALUE)
# ============================================================
class AutonomySettings(BaseModel):
    """
    Per-user autonomy policy.

    Replaced wholesale on update; never mutated in place.
    """

    user_id: str

    capabilities: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_CAPABILITY_LEVELS)
    )

    # Override windows (hard blocks when enabled)
    work_hours_override: bool = False
    family_time_override: bool = False
    sleep_hours_override: bool = False

    # Approval thresholds
    financial_threshold: float = Field(default=0.0, ge=0)
    time_commitment_threshold: int = Field(default=60, ge=0)  # minutes
    people_affected_threshold: int = Field(default=1, ge=0)

    updated_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def defaults_for(cls, user_id: str) -> "AutonomySettings":
        return cls(user_id=user_id)

    def level_for(self, capability: str) -> int:
        # Unknown capability degrades to the most conservative level.
        return int(self.capabilities.get(capability, MIN_LEVEL))

    def override_enabled(self, window: str) -> bool:
        return bool(getattr(self, f"{window}_override", False))


# ============================================================
# PARTIAL UPDATE (BOUNDARY INPUT)
# ============================================================
class SettingsUpdate(BaseModel):
    capabilities: Optional[Dict[str, Any]] = None

    work_hours_override: Optional[bool] = None
    family_time_override: Optional[bool] = None
    sleep_hours_override: Optional[bool] = None

    financial_threshold: Optional[float] = None
    time_commitment_threshold: Optional[int] = None
    people_affected_threshold: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


class SettingsChange(BaseModel):
    user_id: str
    changed_at: datetime
    changes: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

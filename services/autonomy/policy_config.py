# services/autonomy/policy_config.py

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from services.autonomy.errors import ValidationError

RISK_LEVELS = ("low", "medium", "high", "critical")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a number, got {raw!r}")


def _env_true(name: str, default: str = "true") -> bool:
    return (os.getenv(name, default) or "").strip().lower() == "true"


@dataclass(frozen=True)
class AutonomyPolicyConfig:
    """
    Numeric policy for the autonomy engine.

    Every constant is configurable; the defaults are the starting policy.
    Built once at startup, immutable afterwards.
    """

    # =========================================================
    # POLICY EVALUATOR
    # =========================================================
    risk_bars: Dict[str, int] = field(
        default_factory=lambda: {"low": 20, "medium": 50, "high": 75, "critical": 95}
    )
    min_confidence: float = 0.5

    # =========================================================
    # APPROVAL WORKFLOW
    # =========================================================
    approval_ttl_seconds: int = 24 * 60 * 60
    sweep_interval_seconds: int = 60
    sweeper_enabled: bool = True

    # =========================================================
    # RECOMMENDATION ANALYZER
    # =========================================================
    recommendation_window: int = 50
    recommendation_min_sample: int = 5
    accept_watermark: float = 0.9
    reject_watermark: float = 0.3
    step_up: int = 10
    step_down: int = 20

    def __post_init__(self) -> None:
        missing = [r for r in RISK_LEVELS if r not in self.risk_bars]
        if missing:
            raise ValidationError(f"risk bar missing for: {', '.join(missing)}")

        bars = [self.risk_bars[r] for r in RISK_LEVELS]
        if any(b < 0 or b > 100 for b in bars):
            raise ValidationError("risk bars must be within [0, 100]")
        if bars != sorted(bars):
            raise ValidationError("risk bars must not decrease with risk level")

        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValidationError("min_confidence must be within [0, 1]")
        if self.approval_ttl_seconds <= 0:
            raise ValidationError("approval_ttl_seconds must be positive")
        if self.sweep_interval_seconds <= 0:
            raise ValidationError("sweep_interval_seconds must be positive")
        if self.recommendation_window <= 0 or self.recommendation_min_sample <= 0:
            raise ValidationError("recommendation window and sample must be positive")
        for name in ("accept_watermark", "reject_watermark"):
            v = getattr(self, name)
            if not 0.0 <= v <= 1.0:
                raise ValidationError(f"{name} must be within [0, 1]")

    def bar_for(self, risk_level: str) -> int:
        return int(self.risk_bars[risk_level])

    # -------------------------------------------------
    # FACTORY
    # -------------------------------------------------
    @classmethod
    def from_env(cls) -> "AutonomyPolicyConfig":
        return cls(
            risk_bars={
                "low": _env_int("AUTONOMY_RISK_BAR_LOW", 20),
                "medium": _env_int("AUTONOMY_RISK_BAR_MEDIUM", 50),
                "high": _env_int("AUTONOMY_RISK_BAR_HIGH", 75),
                "critical": _env_int("AUTONOMY_RISK_BAR_CRITICAL", 95),
            },
            min_confidence=_env_float("AUTONOMY_MIN_CONFIDENCE", 0.5),
            approval_ttl_seconds=_env_int("APPROVAL_TTL_SECONDS", 24 * 60 * 60),
            sweep_interval_seconds=_env_int("APPROVAL_SWEEP_INTERVAL_SECONDS", 60),
            sweeper_enabled=_env_true("APPROVAL_SWEEPER_ENABLED", "true"),
            recommendation_window=_env_int("RECOMMENDATION_WINDOW", 50),
            recommendation_min_sample=_env_int("RECOMMENDATION_MIN_SAMPLE", 5),
            accept_watermark=_env_float("RECOMMENDATION_ACCEPT_WATERMARK", 0.9),
            reject_watermark=_env_float("RECOMMENDATION_REJECT_WATERMARK", 0.3),
            step_up=_env_int("RECOMMENDATION_STEP_UP", 10),
            step_down=_env_int("RECOMMENDATION_STEP_DOWN", 20),
        )


_DEFAULT: Optional[AutonomyPolicyConfig] = None


def get_policy_config() -> AutonomyPolicyConfig:
    global _DEFAULT
    if _DEFAULT is None:
        _DEFAULT = AutonomyPolicyConfig.from_env()
    return _DEFAULT

# services/autonomy/threshold_evaluator.py

"""
Threshold & override evaluator.

Pure and deterministic: the same (proposal, settings, now, schedule) always
yields the same verdict, which is what lets a decision be explained back to
the user. No I/O, no clock reads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from models.action_proposal import ActionProposal
from models.autonomy_settings import AutonomySettings
from models.override_schedule import OVERRIDE_WINDOWS, OverrideSchedule
from services.autonomy.errors import ValidationError

FINANCIAL = "financial"
TIME = "time"
PEOPLE = "people"


@dataclass(frozen=True)
class ThresholdBreach:
    dimension: str
    value: float
    threshold: float

    def describe(self) -> str:
        if self.dimension == FINANCIAL:
            return (
                f"Financial commitment of ${self.value:,.2f} exceeds the "
                f"${self.threshold:,.2f} threshold"
            )
        if self.dimension == TIME:
            return (
                f"Time commitment of {int(self.value)} minutes exceeds the "
                f"{int(self.threshold)} minute threshold"
            )
        return (
            f"{int(self.value)} people affected exceeds the "
            f"threshold of {int(self.threshold)}"
        )


@dataclass(frozen=True)
class ThresholdVerdict:
    """
    Data-only result of the magnitude and override-window checks.
    """

    breaches: Tuple[ThresholdBreach, ...] = field(default_factory=tuple)
    blocked_windows: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def exceeds_threshold(self) -> bool:
        return bool(self.breaches)

    @property
    def blocked_by_override(self) -> bool:
        return bool(self.blocked_windows)

    @property
    def exceeded_dimensions(self) -> Tuple[str, ...]:
        return tuple(b.dimension for b in self.breaches)


def check_magnitudes(
    proposal: ActionProposal, settings: AutonomySettings
) -> Tuple[ThresholdBreach, ...]:
    breaches = []

    amount = proposal.financial_amount
    if amount is not None and amount > settings.financial_threshold:
        breaches.append(
            ThresholdBreach(FINANCIAL, float(amount), float(settings.financial_threshold))
        )

    minutes = proposal.estimated_minutes
    if minutes is not None and minutes > settings.time_commitment_threshold:
        breaches.append(
            ThresholdBreach(TIME, float(minutes), float(settings.time_commitment_threshold))
        )

    people = proposal.people_count
    if people > settings.people_affected_threshold:
        breaches.append(
            ThresholdBreach(PEOPLE, float(people), float(settings.people_affected_threshold))
        )

    return tuple(breaches)


def check_override_windows(
    settings: AutonomySettings,
    now: datetime,
    schedule: Optional[OverrideSchedule] = None,
) -> Tuple[str, ...]:
    if now.tzinfo is None:
        raise ValidationError("now must be timezone-aware")

    sched = schedule or OverrideSchedule()
    local_now = sched.localize(now)

    return tuple(
        name
        for name in OVERRIDE_WINDOWS
        if settings.override_enabled(name) and sched.window(name).contains(local_now)
    )


def evaluate(
    proposal: ActionProposal,
    settings: AutonomySettings,
    now: datetime,
    schedule: Optional[OverrideSchedule] = None,
) -> ThresholdVerdict:
    return ThresholdVerdict(
        breaches=check_magnitudes(proposal, settings),
        blocked_windows=check_override_windows(settings, now, schedule),
    )

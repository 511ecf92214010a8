from __future__ import annotations

from datetime import datetime, time, timezone

import pytest

from models.action_proposal import ActionProposal
from models.autonomy_settings import AutonomySettings
from models.override_schedule import OverrideSchedule, OverrideWindow
from services.autonomy.errors import ValidationError
from services.autonomy.threshold_evaluator import (
    FINANCIAL,
    PEOPLE,
    TIME,
    check_override_windows,
    evaluate,
)


def _proposal(**kw) -> ActionProposal:
    base = {
        "user_id": "u1",
        "action_type": "schedule_meeting",
        "risk_level": "low",
        "confidence": 0.9,
    }
    base.update(kw)
    return ActionProposal(**base)


def test_no_magnitudes_means_no_breach() -> None:
    verdict = evaluate(_proposal(), AutonomySettings(user_id="u1"), datetime.now(timezone.utc))
    assert verdict.breaches == ()
    assert verdict.blocked_windows == ()


def test_financial_breach_at_zero_threshold() -> None:
    verdict = evaluate(
        _proposal(financial_amount=50),
        AutonomySettings(user_id="u1", financial_threshold=0),
        datetime(2026, 3, 4, 14, 0, tzinfo=timezone.utc),
    )
    assert verdict.exceeded_dimensions == (FINANCIAL,)
    assert verdict.breaches[0].describe() == (
        "Financial commitment of $50.00 exceeds the $0.00 threshold"
    )


def test_amount_equal_to_threshold_is_not_a_breach() -> None:
    verdict = evaluate(
        _proposal(financial_amount=100, estimated_minutes=60),
        AutonomySettings(user_id="u1", financial_threshold=100),
        datetime(2026, 3, 4, 14, 0, tzinfo=timezone.utc),
    )
    assert verdict.breaches == ()


def test_time_and_people_breaches() -> None:
    verdict = evaluate(
        _proposal(estimated_minutes=90, affected_user_ids=["u2", "u3"]),
        AutonomySettings(user_id="u1"),
        datetime(2026, 3, 4, 14, 0, tzinfo=timezone.utc),
    )
    assert verdict.exceeded_dimensions == (TIME, PEOPLE)


def test_people_count_uses_larger_of_declared_and_listed() -> None:
    p = _proposal(affected_user_ids=["u2"], people_affected=4)
    assert p.people_count == 4


def test_sleep_window_wraps_midnight_and_belongs_to_start_day() -> None:
    settings = AutonomySettings(user_id="u1", sleep_hours_override=True)
    # Tuesday 02:00 is inside Monday's 22:00-07:00 window
    now = datetime(2026, 3, 3, 2, 0, tzinfo=timezone.utc)
    assert check_override_windows(settings, now) == ("sleep_hours",)

    schedule = OverrideSchedule(
        sleep_hours=OverrideWindow(start=time(22, 0), end=time(7, 0), days=[0])
    )
    # Wednesday 02:00 follows Tuesday night, which is not in the schedule
    now = datetime(2026, 3, 4, 2, 0, tzinfo=timezone.utc)
    assert check_override_windows(settings, now, schedule) == ()
    # Tuesday 02:00 follows Monday night
    now = datetime(2026, 3, 3, 2, 0, tzinfo=timezone.utc)
    assert check_override_windows(settings, now, schedule) == ("sleep_hours",)


def test_disabled_override_never_blocks() -> None:
    settings = AutonomySettings(user_id="u1")
    now = datetime(2026, 3, 4, 10, 0, tzinfo=timezone.utc)
    assert check_override_windows(settings, now) == ()


def test_work_hours_only_on_weekdays() -> None:
    settings = AutonomySettings(user_id="u1", work_hours_override=True)
    assert check_override_windows(settings, datetime(2026, 3, 4, 10, 0, tzinfo=timezone.utc)) == (
        "work_hours",
    )
    # Saturday
    assert check_override_windows(settings, datetime(2026, 3, 7, 10, 0, tzinfo=timezone.utc)) == ()


def test_naive_now_is_rejected() -> None:
    with pytest.raises(ValidationError):
        check_override_windows(AutonomySettings(user_id="u1"), datetime(2026, 3, 4, 10, 0))


def test_window_with_equal_bounds_is_invalid() -> None:
    with pytest.raises(ValueError):
        OverrideWindow(start=time(9, 0), end=time(9, 0))

# tests/conftest.py
from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

# --- ensure project root is on sys.path ---
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from services.action_execution_service import ActionExecutionService  # noqa: E402
from services.approval_request_store import ApprovalRequestStore  # noqa: E402
from services.approval_state_service import ApprovalStateService  # noqa: E402
from services.autonomy.autonomy_coordinator import AutonomyCoordinator  # noqa: E402
from services.autonomy.policy_config import AutonomyPolicyConfig  # noqa: E402
from services.autonomy_settings_store import AutonomySettingsStore  # noqa: E402
from services.database_service import create_db_engine, init_schema  # noqa: E402
from services.decision_outcome_registry import DecisionOutcomeRegistry  # noqa: E402
from services.observability.telemetry_emitter import TelemetryEmitter  # noqa: E402
from services.observability.telemetry_sink import InMemoryTelemetrySink  # noqa: E402
from services.override_schedule_service import OverrideScheduleService  # noqa: E402

# Wednesday 14:00 UTC
T0 = datetime(2026, 3, 4, 14, 0, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
    # Force AnyIO tests to run on asyncio only.
    # This avoids requiring optional dependency "trio".
    return "asyncio"


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingExecutor:
    """Records calls; raises while `fail_with` is set."""

    def __init__(self) -> None:
        self.calls = []
        self.fail_with = None

    def execute(self, **kwargs):
        self.calls.append(kwargs)
        if self.fail_with is not None:
            raise RuntimeError(self.fail_with)
        return {"done": kwargs["action_type"]}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine():
    e = create_db_engine("sqlite+pysqlite:///:memory:")
    init_schema(e)
    yield e
    e.dispose()


@pytest.fixture
def config() -> AutonomyPolicyConfig:
    return AutonomyPolicyConfig(sweeper_enabled=False)


@pytest.fixture
def sink() -> InMemoryTelemetrySink:
    return InMemoryTelemetrySink()


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def approvals(engine, config, clock, sink, executor) -> ApprovalStateService:
    return ApprovalStateService(
        ApprovalRequestStore(engine),
        execution=ActionExecutionService(executor, clock=clock),
        config=config,
        telemetry=TelemetryEmitter(sink),
        clock=clock,
    )


@pytest.fixture
def settings_store(engine, clock) -> AutonomySettingsStore:
    return AutonomySettingsStore(engine, clock=clock)


@pytest.fixture
def coordinator(engine, config, clock, approvals, settings_store) -> AutonomyCoordinator:
    return AutonomyCoordinator(
        settings_store=settings_store,
        approvals=approvals,
        decisions=DecisionOutcomeRegistry(engine, clock=clock),
        schedules=OverrideScheduleService(),
        config=config,
        clock=clock,
    )

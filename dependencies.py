import logging
import os
from datetime import datetime
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import Header, HTTPException
from sqlalchemy.engine import Engine

from services.action_execution_service import ActionExecutionService, ActionExecutor
from services.approval_request_store import ApprovalRequestStore
from services.approval_state_service import ApprovalStateService
from services.autonomy.autonomy_coordinator import AutonomyCoordinator
from services.autonomy.policy_config import AutonomyPolicyConfig, get_policy_config
from services.autonomy_settings_store import AutonomySettingsStore
from services.cron_service import CronService
from services.database_service import create_db_engine, init_schema, utc_now
from services.decision_outcome_registry import DecisionOutcomeRegistry
from services.observability.telemetry_emitter import TelemetryEmitter
from services.observability.telemetry_sink import TelemetrySink
from services.override_schedule_service import OverrideScheduleService

# .env only for local runs
if os.getenv("RENDER") != "true":
    load_dotenv(override=False)

logger = logging.getLogger(__name__)

SWEEP_JOB_NAME = "approval_expiration_sweep"

# -------------------------------------------------------
# GLOBAL SINGLETON INSTANCES
# -------------------------------------------------------
_engine: Optional[Engine] = None
_config: Optional[AutonomyPolicyConfig] = None
_coordinator: Optional[AutonomyCoordinator] = None
_cron: Optional[CronService] = None


# -------------------------------------------------------
# GETTERS (FastAPI Depends uses these)
# -------------------------------------------------------
def get_engine() -> Optional[Engine]:
    return _engine


def get_config() -> AutonomyPolicyConfig:
    return _config or get_policy_config()


def get_coordinator() -> AutonomyCoordinator:
    if _coordinator is None:
        init_services()
    assert _coordinator is not None
    return _coordinator


def get_cron_service() -> CronService:
    if _cron is None:
        init_services()
    assert _cron is not None
    return _cron


# -------------------------------------------------------
# CALLER IDENTITY (resolved upstream, forwarded as headers)
# -------------------------------------------------------
def require_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    uid = (x_user_id or "").strip()
    if not uid:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return uid


def optional_user_name(x_user_name: Optional[str] = Header(default=None)) -> Optional[str]:
    return (x_user_name or "").strip() or None


# -------------------------------------------------------
# INIT SERVICES (called once from the app lifespan)
# -------------------------------------------------------
def init_services(
    *,
    engine: Optional[Engine] = None,
    config: Optional[AutonomyPolicyConfig] = None,
    executor: Optional[ActionExecutor] = None,
    telemetry_sink: Optional[TelemetrySink] = None,
    clock: Callable[[], datetime] = utc_now,
) -> AutonomyCoordinator:
    """
    Idempotent wiring of the engine singletons.

    Tests pass their own engine/clock/executor after reset_services().
    """
    global _engine, _config, _coordinator, _cron

    if _coordinator is not None:
        return _coordinator

    _config = config or get_policy_config()
    _engine = engine or create_db_engine()
    init_schema(_engine)

    telemetry = TelemetryEmitter(telemetry_sink)
    execution = ActionExecutionService(executor, clock=clock)

    approvals = ApprovalStateService(
        ApprovalRequestStore(_engine),
        execution=execution,
        config=_config,
        telemetry=telemetry,
        clock=clock,
    )

    _coordinator = AutonomyCoordinator(
        settings_store=AutonomySettingsStore(_engine, clock=clock),
        approvals=approvals,
        decisions=DecisionOutcomeRegistry(_engine, clock=clock),
        schedules=OverrideScheduleService(),
        execution=execution,
        config=_config,
        telemetry=telemetry,
        clock=clock,
    )

    _cron = CronService()
    _cron.register(SWEEP_JOB_NAME, _coordinator.sweep_expired)

    logger.info("autonomy services initialized (dialect=%s)", _engine.dialect.name)
    return _coordinator


def reset_services() -> None:
    global _engine, _config, _coordinator, _cron

    if _cron is not None:
        _cron.stop()
    _engine = None
    _config = None
    _coordinator = None
    _cron = None

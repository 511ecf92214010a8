# jobs/expiration_sweep_job.py
from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from sqlalchemy.engine import Engine

from services.approval_request_store import ApprovalRequestStore
from services.approval_state_service import ApprovalStateService
from services.database_service import create_db_engine, init_schema

logger = logging.getLogger("sweep.job")


def run_once(engine: Optional[Engine] = None) -> int:
    """
    One expiration sweep over every due pending request.

    Exit codes: 0 ok, 3 unhandled failure. Safe to re-run at any time.
    """
    own_engine = engine is None
    e = engine or create_db_engine()
    try:
        init_schema(e)
        svc = ApprovalStateService(ApprovalRequestStore(e))
        try:
            expired = svc.sweep_expired()
        except Exception:  # noqa: BLE001
            logger.exception("sweep_job_unhandled_exception")
            return 3

        logger.info("sweep_job_run_summary expired=%s", expired)
        return 0
    finally:
        if own_engine:
            e.dispose()


def _configure_logging() -> None:
    level = (os.getenv("LOG_LEVEL") or "INFO").upper().strip()
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


if __name__ == "__main__":
    _configure_logging()
    raise SystemExit(run_once())

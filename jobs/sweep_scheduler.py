# jobs/sweep_scheduler.py
from __future__ import annotations

import logging
import os
import sys

from sqlalchemy import text
from sqlalchemy.engine import Connection

from jobs.expiration_sweep_job import run_once
from services.database_service import create_db_engine

logger = logging.getLogger("sweep.scheduler")

_DEFAULT_LOCK_KEY = 0x5A7E0001


def _lock_key() -> int:
    # Constant across all instances; override when several apps share one DB.
    raw = (os.getenv("APPROVAL_SWEEP_LOCK_KEY") or "").strip()
    return int(raw) if raw.isdigit() else _DEFAULT_LOCK_KEY


def _acquire_lock(conn: Connection) -> bool:
    got = conn.execute(text("select pg_try_advisory_lock(:k)"), {"k": _lock_key()}).scalar()
    return bool(got)


def _release_lock(conn: Connection) -> None:
    conn.execute(text("select pg_advisory_unlock(:k)"), {"k": _lock_key()})


def main() -> int:
    """
    Entry point for an external scheduler (cron, Render cron job).

    On PostgreSQL only one instance sweeps at a time (advisory lock); other
    dialects run unguarded since they are single-process deployments.
    """
    e = create_db_engine()
    try:
        if e.dialect.name != "postgresql":
            rc = run_once(e)
            logger.info("sweep_scheduler: run_once_exit=%s (no advisory lock on %s)", rc, e.dialect.name)
            return rc

        with e.connect() as c:
            if not _acquire_lock(c):
                logger.info("sweep_scheduler: lock_not_acquired (another instance running)")
                return 0

            try:
                rc = run_once(e)
                logger.info("sweep_scheduler: run_once_exit=%s", rc)
                return rc
            finally:
                _release_lock(c)
    finally:
        e.dispose()


if __name__ == "__main__":
    logging.basicConfig(
        level=(os.getenv("LOG_LEVEL") or "INFO").upper().strip(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    raise SystemExit(main())

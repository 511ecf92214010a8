# services/cron_service.py

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

_MAX_LOGS = 200


class CronService:
    """
    CANONICAL CRON SERVICE

    - deterministic, sequential execution of registered jobs
    - BACKPRESSURE: an overlapping run is rejected, never queued
    - FAILURE CONTAINMENT: one job failing does not stop the others
    - optional background timer (start/stop) for in-process scheduling

    Jobs must be idempotent; a rejected or failed run is simply retried on
    the next tick.
    """

    def __init__(self):
        self.jobs: Dict[str, Callable[[], Any]] = {}
        self.last_run: Dict[str, str] = {}
        self.logs: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self._running = False

        self._interval: Optional[float] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ---------------------------------------------------------
    # UTILITIES
    # ---------------------------------------------------------
    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ---------------------------------------------------------
    # JOB REGISTRATION
    # ---------------------------------------------------------
    def register(self, name: str, fn: Callable[[], Any]) -> None:
        if not callable(fn):
            raise ValueError("Cron job must be callable")

        self.jobs[name] = fn

    def _log(self, name: str, status: str, message: Optional[str] = None) -> None:
        self.logs.append(
            {
                "timestamp": self._now(),
                "job": name,
                "status": status,
                "message": message,
            }
        )
        del self.logs[:-_MAX_LOGS]

    # ---------------------------------------------------------
    # RUN ALL JOBS (BACKPRESSURE GUARDED)
    # ---------------------------------------------------------
    def run(self) -> Dict[str, Any]:
        with self._lock:
            if self._running:
                return {
                    "cron_status": "rejected",
                    "reason": "cron_already_running",
                    "timestamp": self._now(),
                }
            self._running = True

        results: Dict[str, Any] = {}

        try:
            for name, fn in list(self.jobs.items()):
                try:
                    output = fn()
                    self.last_run[name] = self._now()

                    results[name] = {
                        "status": "success",
                        "output": output,
                    }
                    self._log(name, "success")

                except Exception as e:  # noqa: BLE001
                    logger.exception("cron job failed job=%s", name)
                    self._log(name, "error", str(e))
                    results[name] = {
                        "status": "error",
                        "error": str(e),
                    }

            return {
                "cron_status": "executed",
                "timestamp": self._now(),
                "results": results,
            }

        finally:
            with self._lock:
                self._running = False

    # ---------------------------------------------------------
    # BACKGROUND TIMER
    # ---------------------------------------------------------
    def start(self, interval_seconds: float) -> bool:
        """Returns False when the timer is already running."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self._thread is not None and self._thread.is_alive():
            return False

        self._interval = float(interval_seconds)
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="cron-service", daemon=True
        )
        self._thread.start()
        logger.info("cron timer started interval=%ss jobs=%s", self._interval, list(self.jobs))
        return True

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout=timeout)
        self._thread = None
        logger.info("cron timer stopped")

    def _loop(self) -> None:
        while not self._stop.wait(self._interval or 0):
            self.run()

    # ---------------------------------------------------------
    # HEALTH / STATUS (READ ONLY)
    # ---------------------------------------------------------
    def status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "timer_active": self._thread is not None and self._thread.is_alive(),
            "interval_seconds": self._interval,
            "jobs_registered": list(self.jobs.keys()),
            "last_run": dict(self.last_run),
            "log_count": len(self.logs),
            "recent_logs": self.logs[-10:],
        }

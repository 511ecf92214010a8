from __future__ import annotations

import threading

import pytest

from services.cron_service import CronService


def test_run_executes_jobs_and_contains_failures() -> None:
    cron = CronService()
    cron.register("ok", lambda: 3)

    def _boom():
        raise RuntimeError("boom")

    cron.register("bad", _boom)

    out = cron.run()
    assert out["cron_status"] == "executed"
    assert out["results"]["ok"] == {"status": "success", "output": 3}
    assert out["results"]["bad"]["status"] == "error"
    assert out["results"]["bad"]["error"] == "boom"

    status = cron.status()
    assert "ok" in status["last_run"]
    assert "bad" not in status["last_run"]
    assert status["running"] is False


def test_overlapping_run_is_rejected() -> None:
    cron = CronService()
    inner = {}

    def _reentrant():
        inner["result"] = cron.run()
        return 0

    cron.register("reentrant", _reentrant)
    cron.run()
    assert inner["result"]["cron_status"] == "rejected"
    assert inner["result"]["reason"] == "cron_already_running"


def test_register_requires_callable() -> None:
    with pytest.raises(ValueError):
        CronService().register("nope", 42)  # type: ignore[arg-type]


def test_background_timer_runs_jobs_until_stopped() -> None:
    cron = CronService()
    ticked = threading.Event()
    cron.register("tick", ticked.set)

    assert cron.start(0.01) is True
    assert cron.start(0.01) is False
    try:
        assert ticked.wait(timeout=2.0)
        assert cron.status()["timer_active"] is True
    finally:
        cron.stop()
    assert cron.status()["timer_active"] is False


def test_timer_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        CronService().start(0)

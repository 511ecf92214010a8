# main.py
from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv
from uvicorn import run

# ============================================================
# ENV + PATH
# ============================================================

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if BASE_DIR not in sys.path:
    sys.path.append(BASE_DIR)

# On Render (or any managed runtime), environment variables should come from the platform,
# not from a baked-in .env file. Keep dotenv for local dev only.
if os.getenv("RENDER") != "true":
    load_dotenv(override=False)

# ============================================================
# LOGGING
# ============================================================

logger = logging.getLogger("autonomy_bootstrap")
logging.basicConfig(
    level=(os.getenv("LOG_LEVEL") or "INFO").upper().strip(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

# ============================================================
# RUNTIME GUARDS (CORE)
# ============================================================


def validate_runtime_env_or_raise() -> None:
    """Invalid policy values fail the boot, never the first request."""
    from services.autonomy.policy_config import AutonomyPolicyConfig

    config = AutonomyPolicyConfig.from_env()
    logger.info(
        "Policy config validated (ttl=%ss sweep=%ss sweeper=%s).",
        config.approval_ttl_seconds,
        config.sweep_interval_seconds,
        config.sweeper_enabled,
    )


# ============================================================
# LOAD FASTAPI APP (SSOT: gateway/gateway_server.py)
# ============================================================

# gateway/gateway_server.py owns the boot sequence (lifespan).
from gateway.gateway_server import app  # noqa: E402

logger.info("FastAPI gateway app loaded (SSOT: gateway/gateway_server.py).")

# ============================================================
# START UVICORN
# ============================================================

if __name__ == "__main__":
    validate_runtime_env_or_raise()

    port = int(os.getenv("PORT", "8000"))
    logger.info("Starting Uvicorn on port %s", port)

    run(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )

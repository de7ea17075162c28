"""
agora.__main__ — Entry point for ``python -m agora``
=====================================================

Wiring:
1. Load .env (``DATABASE_URL``).
2. Load config.yaml (port, sweep cadence).
3. Serve :data:`agora.api.main.app` with uvicorn.  Schema creation,
   challenge seeding and the poll sweeper start in the app lifespan.

Run with::

    python -m agora
"""

from __future__ import annotations

import logging

import uvicorn
from dotenv import load_dotenv

from agora.config import load_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("agora")


def main() -> None:
    """Bootstrap and serve the Agora API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Config loaded — Community: %s", cfg.community_name)

    # 3. Serve (blocks until Ctrl+C or SIGTERM).
    uvicorn.run("agora.api.main:app", host="0.0.0.0", port=cfg.api_port, log_config=None)


if __name__ == "__main__":
    main()

"""
agora.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn agora.api.main:app --reload --port 8000

or ``python -m agora``, which also configures logging.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from agora import __version__  # noqa: E402
from agora.api.deps import get_config, get_engine  # noqa: E402
from agora.api.routes.challenges import router as challenges_router  # noqa: E402
from agora.api.routes.communities import router as communities_router  # noqa: E402
from agora.api.routes.notifications import router as notifications_router  # noqa: E402
from agora.api.routes.polls import router as polls_router  # noqa: E402
from agora.api.routes.questions import router as questions_router  # noqa: E402
from agora.api.routes.users import router as users_router  # noqa: E402
from agora.database.engine import init_db  # noqa: E402
from agora.database.seed import seed_default_challenges  # noqa: E402
from agora.services.scheduler import PollSweeper  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
      3) ``cors_origins`` in config.yaml, when the file exists
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    if Path(os.getenv("AGORA_CONFIG", "config.yaml")).exists():
        return list(get_config().cors_origins)
    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — schema, seed data and the poll sweeper."""
    cfg = get_config()
    engine = get_engine()

    await asyncio.to_thread(init_db, engine)
    if cfg.seed_default_challenges:
        await asyncio.to_thread(seed_default_challenges, engine)

    sweeper = PollSweeper(engine, interval=cfg.poll_sweep_seconds)
    sweeper.start(asyncio.get_running_loop())
    app.state.sweeper = sweeper

    logger.info("Agora API started for %s (%s)", cfg.community_name, engine.url.database)
    yield
    sweeper.stop()
    logger.info("Agora API shutting down")


app = FastAPI(
    title="Agora Engagement API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(questions_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(polls_router, prefix="/api")
app.include_router(challenges_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(communities_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}

"""
agora.api.deps — FastAPI dependency injection
==============================================
"""

from __future__ import annotations

import os
from datetime import datetime
from functools import lru_cache

from sqlalchemy import Engine

from agora.config import AgoraConfig, load_config
from agora.constants import utcnow
from agora.database.engine import create_db_engine


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> AgoraConfig:
    return load_config(os.getenv("AGORA_CONFIG", "config.yaml"))


def get_now() -> datetime:
    """Request time; overridden in tests to pin the clock."""
    return utcnow()

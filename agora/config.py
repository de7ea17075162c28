"""
agora.config — YAML Configuration Loader
=========================================

Reads ``config.yaml`` for process-level settings (identity, API port,
sweep cadence).  Secrets such as ``DATABASE_URL`` stay in the environment
and are loaded from ``.env`` by the entry points.

Usage::

    from agora.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "Agora Dev"
    print(cfg.poll_sweep_seconds)  # 60
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AgoraConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # HTTP
    api_port: int = 8000
    cors_origins: tuple[str, ...] = field(default_factory=tuple)

    # Poll expiry sweep cadence (seconds between closeExpiredPolls runs)
    poll_sweep_seconds: int = 60

    # Insert the default challenge catalogue on startup
    seed_default_challenges: bool = True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> AgoraConfig:
    """Read *path* and return an :class:`AgoraConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``poll_sweep_seconds`` is not a positive integer.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    sweep_seconds = int(raw.get("poll_sweep_seconds", 60))
    if sweep_seconds <= 0:
        raise ValueError(
            f"poll_sweep_seconds must be positive, got {sweep_seconds}"
        )

    return AgoraConfig(
        community_name=raw["community_name"],
        api_port=int(raw.get("api_port", 8000)),
        cors_origins=tuple(
            origin.rstrip("/") for origin in raw.get("cors_origins") or []
        ),
        poll_sweep_seconds=sweep_seconds,
        seed_default_challenges=bool(raw.get("seed_default_challenges", True)),
    )

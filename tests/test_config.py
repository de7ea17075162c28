"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import pytest

from agora.config import load_config


def _write(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, 'community_name: "Agora Dev"\n'))
        assert cfg.community_name == "Agora Dev"
        assert cfg.api_port == 8000
        assert cfg.poll_sweep_seconds == 60
        assert cfg.seed_default_challenges is True
        assert cfg.cors_origins == ()

    def test_overrides(self, tmp_path):
        cfg = load_config(_write(tmp_path, (
            "community_name: Agora\n"
            "api_port: 9000\n"
            "poll_sweep_seconds: 5\n"
            "seed_default_challenges: false\n"
            "cors_origins:\n"
            "  - http://localhost:3000/\n"
        )))
        assert cfg.api_port == 9000
        assert cfg.poll_sweep_seconds == 5
        assert cfg.seed_default_challenges is False
        assert cfg.cors_origins == ("http://localhost:3000",)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_community_name(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "api_port: 8000\n"))

    def test_non_positive_sweep(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, "community_name: A\npoll_sweep_seconds: 0\n"))

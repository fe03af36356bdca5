"""
tests/test_config.py — YAML Configuration Loader Tests
========================================================
"""

from __future__ import annotations

import pytest

from huddle.config import HuddleConfig, load_config


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "config.yaml")

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == HuddleConfig()

    def test_overrides(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "cookie_name: huddle_session\n"
            "cookie_secure: true\n"
            "cookie_domain: example.com\n"
            "search_limit: 20\n"
            "retention_days: 0\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.cookie_name == "huddle_session"
        assert cfg.cookie_secure is True
        assert cfg.cookie_domain == "example.com"
        assert cfg.search_limit == 20
        assert cfg.retention_days == 0
        assert cfg.search_min_length == 2

    @pytest.mark.parametrize("line", [
        "search_limit: 0",
        "cookie_max_age_days: -1",
        "retention_check_hours: 0",
        "retention_days: -5",
    ])
    def test_rejects_out_of_range(self, tmp_path, line):
        path = tmp_path / "config.yaml"
        path.write_text(line + "\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)

    def test_cookie_max_age_seconds(self):
        assert HuddleConfig(cookie_max_age_days=2).cookie_max_age_seconds == 172800

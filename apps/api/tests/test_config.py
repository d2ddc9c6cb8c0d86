"""Tests for settings parsing."""
from __future__ import annotations

from coordinator.core.config import Settings


def test_cors_origins_accept_comma_separated_values(monkeypatch):
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example, https://b.example")

    settings = Settings()

    assert settings.cors_allow_origins == ["https://a.example", "https://b.example"]


def test_cors_origins_accept_json_list(monkeypatch):
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", '["https://a.example"]')

    assert Settings().cors_allow_origins == ["https://a.example"]


def test_defaults_and_log_level_normalised(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings()

    assert settings.log_level == "DEBUG"
    assert settings.rtc_min_port <= settings.rtc_max_port
    assert [codec["kind"] for codec in settings.media_codecs] == ["audio", "video"]

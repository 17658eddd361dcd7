"""Tests for environment-driven settings."""

import logging

from streamchain import Prompts, Settings
from streamchain.config import configure_logging


def test_defaults():
    settings = Settings()
    assert settings.provider == "openai"
    assert settings.max_iterations == 10
    assert settings.source_preview_length == 50
    assert settings.port == 8000
    assert settings.prompts == Prompts()
    assert "{chat_history}" in settings.prompts.condense_question
    assert "{context}" in settings.prompts.answer


def test_from_env(monkeypatch):
    monkeypatch.setenv("STREAMCHAIN_PROVIDER", "anthropic")
    monkeypatch.setenv("STREAMCHAIN_AGENT_MODEL", "claude-test")
    monkeypatch.setenv("STREAMCHAIN_MAX_ITERATIONS", "4")
    monkeypatch.setenv("STREAMCHAIN_RETRIEVAL_TEMPERATURE", "0.5")
    monkeypatch.setenv("STREAMCHAIN_DEBUG", "true")
    monkeypatch.setenv("STREAMCHAIN_LOG_LEVEL", "debug")
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.setenv("SERPAPI_API_KEY", "serp-key")

    settings = Settings.from_env()

    assert settings.provider == "anthropic"
    assert settings.agent_model == "claude-test"
    assert settings.max_iterations == 4
    assert settings.retrieval_temperature == 0.5
    assert settings.debug is True
    assert settings.log_level == "DEBUG"
    assert settings.host == "127.0.0.1"
    assert settings.port == 9001
    assert settings.serpapi_api_key == "serp-key"


def test_invalid_numbers_fall_back(monkeypatch, caplog):
    monkeypatch.setenv("PORT", "not-a-port")
    monkeypatch.setenv("STREAMCHAIN_CHAT_TEMPERATURE", "hot")

    with caplog.at_level(logging.WARNING):
        settings = Settings.from_env()

    assert settings.port == 8000
    assert settings.chat_temperature == 0.8
    assert "Invalid PORT" in caplog.text


def test_configure_logging_accepts_unknown_level():
    configure_logging("NOT_A_LEVEL")
    configure_logging("debug")

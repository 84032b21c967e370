"""Tests for log level resolution."""

from checkout.utils.logging import get_log_level


class TestLogLevel:
    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")
        assert get_log_level() == "ERROR"

    def test_derived_from_environment(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.setenv("ENVIRONMENT", "production")
        assert get_log_level() == "INFO"

    def test_test_environment_is_quiet(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        monkeypatch.setenv("PROTEAN_ENV", "test")
        assert get_log_level() == "WARNING"

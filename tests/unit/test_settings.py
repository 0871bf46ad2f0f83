"""Unit tests for environment-driven configuration helpers."""

from config.settings import detect_platform, get_cors_origins, get_log_level, get_port, is_production


def test_cors_origins_split_and_trimmed():
    assert get_cors_origins(" https://a.com/ ,https://b.com,, ") == ["https://a.com", "https://b.com"]


def test_default_port(monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    assert get_port() == 3001


def test_port_from_env(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    assert get_port() == 8080


def test_detect_platform(monkeypatch):
    for var in ("RAILWAY_ENVIRONMENT_ID", "RENDER", "FLY_APP_NAME"):
        monkeypatch.delenv(var, raising=False)
    assert detect_platform() == "generic"
    assert is_production() is False

    monkeypatch.setenv("RENDER", "true")
    assert detect_platform() == "render"
    assert is_production() is True


class TestLogLevel:
    def clear_platform(self, monkeypatch):
        for var in ("RAILWAY_ENVIRONMENT_ID", "RENDER", "FLY_APP_NAME", "LOG_LEVEL"):
            monkeypatch.delenv(var, raising=False)

    def test_debug_when_running_locally(self, monkeypatch):
        self.clear_platform(monkeypatch)
        assert get_log_level() == "DEBUG"

    def test_info_on_hosting_platform(self, monkeypatch):
        self.clear_platform(monkeypatch)
        monkeypatch.setenv("RAILWAY_ENVIRONMENT_ID", "env-123")
        assert get_log_level() == "INFO"

    def test_explicit_level_wins(self, monkeypatch):
        self.clear_platform(monkeypatch)
        monkeypatch.setenv("RENDER", "true")
        monkeypatch.setenv("LOG_LEVEL", "warning")
        assert get_log_level() == "WARNING"

"""Tests for environment-driven settings."""

from pathlib import Path

from validation_assets.config import AssetSettings
from validation_assets.fetcher import DEFAULT_CONNECT_TIMEOUT_MS, DEFAULT_READ_TIMEOUT_MS

ENV_VARS = [
    "VALIDATION_ASSETS_PATH",
    "VALIDATION_ASSETS_DATA_PATH",
    "VALIDATION_ASSETS_PROFILES_FILE",
    "VALIDATION_ASSETS_SYNC_ENABLED",
    "VALIDATION_ASSETS_SYNC_ON_STARTUP",
    "VALIDATION_ASSETS_BASE_URL_OVERRIDE",
    "VALIDATION_ASSETS_CONNECT_TIMEOUT_MS",
    "VALIDATION_ASSETS_READ_TIMEOUT_MS",
]


def _clear(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    _clear(monkeypatch)
    settings = AssetSettings.from_env()

    assert settings.asset_root == Path("assets")
    assert settings.data_dir == Path("assets") / ".versions"
    assert settings.profiles_file == Path("assets") / "validation-profiles.yml"
    assert settings.history_dir == Path("assets") / ".versions" / "history"
    assert settings.staging_dir == Path("assets") / ".versions" / "staging"
    assert settings.sync_enabled is True
    assert settings.sync_on_startup is False
    assert settings.base_url_override is None
    assert settings.connect_timeout_ms == DEFAULT_CONNECT_TIMEOUT_MS
    assert settings.read_timeout_ms == DEFAULT_READ_TIMEOUT_MS


def test_overrides(monkeypatch, tmp_path):
    _clear(monkeypatch)
    monkeypatch.setenv("VALIDATION_ASSETS_PATH", str(tmp_path / "assets"))
    monkeypatch.setenv("VALIDATION_ASSETS_DATA_PATH", str(tmp_path / "data"))
    monkeypatch.setenv("VALIDATION_ASSETS_PROFILES_FILE", str(tmp_path / "profiles.yml"))
    monkeypatch.setenv("VALIDATION_ASSETS_SYNC_ENABLED", "false")
    monkeypatch.setenv("VALIDATION_ASSETS_SYNC_ON_STARTUP", "yes")
    monkeypatch.setenv("VALIDATION_ASSETS_BASE_URL_OVERRIDE", " http://localhost:8089 ")
    monkeypatch.setenv("VALIDATION_ASSETS_CONNECT_TIMEOUT_MS", "2500")
    monkeypatch.setenv("VALIDATION_ASSETS_READ_TIMEOUT_MS", "30000")

    settings = AssetSettings.from_env()

    assert settings.asset_root == tmp_path / "assets"
    assert settings.history_dir == tmp_path / "data" / "history"
    assert settings.profiles_file == tmp_path / "profiles.yml"
    assert settings.sync_enabled is False
    assert settings.sync_on_startup is True
    assert settings.base_url_override == "http://localhost:8089"
    assert settings.connect_timeout_ms == 2500
    assert settings.read_timeout_ms == 30000


def test_invalid_timeouts_fall_back(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("VALIDATION_ASSETS_CONNECT_TIMEOUT_MS", "-5")
    monkeypatch.setenv("VALIDATION_ASSETS_READ_TIMEOUT_MS", "soon")

    settings = AssetSettings.from_env()

    assert settings.connect_timeout_ms == DEFAULT_CONNECT_TIMEOUT_MS
    assert settings.read_timeout_ms == DEFAULT_READ_TIMEOUT_MS


def test_for_root(tmp_path):
    settings = AssetSettings.for_root(tmp_path, sync_enabled=False)
    assert settings.data_dir == tmp_path / ".versions"
    assert settings.profiles_file == tmp_path / "validation-profiles.yml"
    assert settings.sync_enabled is False

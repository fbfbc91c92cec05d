#!/usr/bin/env python3
"""
Tests for settings loading from environment variables
"""
from pathlib import Path

from vault_media.config import Settings, get_settings


def test_defaults(monkeypatch):
    for name in ("VAULT_MEDIA_ROOT_DIRECTORY", "VAULT_MEDIA_EXCLUDED_FOLDERS", "VAULT_MEDIA_REALTIME_UPDATE"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings()

    assert settings.media_root_directory == "media"
    assert settings.included_file_regex == ".*"
    assert settings.excluded_folders == []
    assert settings.realtime_update is True
    assert settings.use_wikilinks is True
    assert settings.freshness_window_ms == 1000
    assert "png" in settings.image_extensions


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("VAULT_MEDIA_VAULT_PATH", str(tmp_path))
    monkeypatch.setenv("VAULT_MEDIA_ROOT_DIRECTORY", "assets")
    monkeypatch.setenv("VAULT_MEDIA_REALTIME_UPDATE", "false")
    monkeypatch.setenv("VAULT_MEDIA_LOG_LEVEL", "debug")

    settings = Settings()

    assert settings.vault_path == tmp_path
    assert settings.media_root_directory == "assets"
    assert settings.realtime_update is False
    assert settings.log_level_value == 10


def test_excluded_folders_comma_separated(monkeypatch):
    monkeypatch.setenv("VAULT_MEDIA_EXCLUDED_FOLDERS", "Templates, Archive/2020 ,")
    assert Settings().excluded_folders == ["Templates", "Archive/2020"]


def test_excluded_folders_json(monkeypatch):
    monkeypatch.setenv("VAULT_MEDIA_EXCLUDED_FOLDERS", '["Templates", "Daily Notes"]')
    assert Settings().excluded_folders == ["Templates", "Daily Notes"]


def test_image_extensions_normalized(monkeypatch):
    monkeypatch.setenv("VAULT_MEDIA_IMAGE_EXTENSIONS", ".PNG,Jpg, .webp")
    assert Settings().image_extensions == ["png", "jpg", "webp"]


def test_get_settings_overrides(tmp_path):
    settings = get_settings(vault_path=tmp_path, media_root_directory="img")
    assert settings.vault_path == tmp_path
    assert settings.media_root_directory == "img"
    assert isinstance(get_settings().vault_path, Path)

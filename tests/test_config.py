from pathlib import Path

import pytest
from pydantic import ValidationError

from addon_uploads.config import DEFAULT_ALLOWED_TYPES, AddonSettings, load_settings


def test_defaults(monkeypatch):
    for name in (
        "ADDON_UPLOADS_ENABLED",
        "ADDON_UPLOADS_PRODUCT_IDS",
        "ADDON_UPLOADS_CATEGORIES",
        "ADDON_UPLOADS_ALLOWED_TYPES",
        "ADDON_UPLOADS_SECRET",
        "UPLOAD_STORAGE_PATH",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()
    assert settings.enabled is True
    assert settings.product_ids == frozenset()
    assert settings.categories_unrestricted() is True
    assert settings.allowed_extensions == frozenset(DEFAULT_ALLOWED_TYPES)
    assert settings.max_bytes == 5_000_000
    assert len(settings.secret_key) >= 16


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("ADDON_UPLOADS_ENABLED", "false")
    monkeypatch.setenv("ADDON_UPLOADS_PRODUCT_IDS", "1, 7,")
    monkeypatch.setenv("ADDON_UPLOADS_CATEGORIES", "Posters,15")
    monkeypatch.setenv("ADDON_UPLOADS_ALLOWED_TYPES", ".PNG,pdf")
    monkeypatch.setenv("ADDON_UPLOADS_SECRET", "environment-secret-key")
    monkeypatch.setenv("ADDON_UPLOADS_SITE_URL", "https://shop.example/")
    monkeypatch.setenv("UPLOAD_STORAGE_PATH", str(tmp_path / "media"))

    settings = load_settings()
    assert settings.enabled is False
    assert settings.product_ids == frozenset({1, 7})
    assert settings.categories == frozenset({"posters", "15"})
    assert settings.categories_unrestricted() is False
    assert settings.allowed_extensions == frozenset({"png", "pdf"})
    assert settings.secret_key == "environment-secret-key"
    assert settings.site_url == "https://shop.example"
    assert settings.storage_root == Path(tmp_path / "media")


def test_wildcard_category_means_unrestricted():
    settings = AddonSettings(categories=["all"], secret_key="wildcard-secret-key")
    assert settings.categories_unrestricted() is True


def test_settings_are_immutable():
    settings = AddonSettings(secret_key="immutable-secret-key")
    with pytest.raises(ValidationError):
        settings.enabled = False

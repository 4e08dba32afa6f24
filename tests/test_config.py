"""Tests for application settings."""

from assethub.core.config import Settings


def test_every_setting_is_known():
    assert set(Settings.model_fields) == {
        "DATABASE_URL",
        "APP_NAME",
        "APP_VERSION",
        "ENVIRONMENT",
        "DEBUG",
        "CORS_ORIGINS",
        "STORAGE_DIR",
        "IMPORT_MAX_UPLOAD_BYTES",
        "IMPORT_ALLOWED_EXTENSIONS",
        "IMPORT_TEMPLATE_PATH",
        "IMPORT_PROGRESS_EVERY",
        "ASSET_ID_MAX_ATTEMPTS",
        "PUBLIC_ASSET_BASE_URL",
    }


def test_import_defaults():
    settings = Settings(_env_file=None)
    assert settings.IMPORT_MAX_UPLOAD_BYTES == 10 * 1024 * 1024
    assert settings.IMPORT_ALLOWED_EXTENSIONS == ["csv", "xlsx", "xls"]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("IMPORT_PROGRESS_EVERY", "5")
    monkeypatch.setenv("ENVIRONMENT", "production")

    settings = Settings(_env_file=None)

    assert settings.IMPORT_PROGRESS_EVERY == 5
    assert settings.is_production

"""
Test conftest — isolate supervisor environment variables so that Settings
tests are not affected by a developer's shell, CI environment, or local
.env file.
"""
import os

import pytest

_ENV_PREFIXES = ("SYSTEM__", "REPORTER__", "POWER__", "LOGGING__")


@pytest.fixture(autouse=True)
def _isolate_supervisor_env(monkeypatch):
    """Remove SUPERVISORS_CONFIG and every nested section env var for each
    test, and disable .env loading by patching Settings.model_config."""
    monkeypatch.delenv("SUPERVISORS_CONFIG", raising=False)
    for var in list(os.environ):
        if var.upper().startswith(_ENV_PREFIXES):
            monkeypatch.delenv(var, raising=False)

    import supervisors.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
    monkeypatch.setattr(settings_module, "_singleton", None)

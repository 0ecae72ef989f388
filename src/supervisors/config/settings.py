"""
config/settings.py — Supervisors Runtime Settings

Merges config.yaml (structure/defaults) with environment variables.
Pydantic-powered — every field is validated and typed.

  - ReporterConfig bounds acoustic_period to [30, 600] s and poll_interval
    to (0, 1] s, so a misconfigured host can never starve the tick loop.
  - PowerConfig rejects non-positive activation/deactivation times.
  - validate_all() performs cross-section startup validation and raises
    ConfigError listing every problem found.
  - load_settings() respects SUPERVISORS_CONFIG when no explicit path is
    given.
"""

from __future__ import annotations

import os
import threading as _threading
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

ACOUSTIC_PERIOD_MIN = 30.0
ACOUSTIC_PERIOD_MAX = 600.0


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class SystemConfig(BaseModel):
    name: str = "vehicle"

    @field_validator("name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("system.name must not be empty")
        return v.strip()


class ReporterConfig(BaseModel):
    enabled: bool = True
    acoustic_reports: bool = False
    acoustic_period: float = 60.0
    poll_interval: float = 1.0
    min_period: float = 1.0

    @field_validator("acoustic_period")
    @classmethod
    def _acoustic_period_range(cls, v: float) -> float:
        if not (ACOUSTIC_PERIOD_MIN <= v <= ACOUSTIC_PERIOD_MAX):
            raise ValueError(
                f"reporter.acoustic_period must be between "
                f"{ACOUSTIC_PERIOD_MIN:g} and {ACOUSTIC_PERIOD_MAX:g} seconds"
            )
        return v

    @field_validator("poll_interval")
    @classmethod
    def _bounded_poll(cls, v: float) -> float:
        if not (0.0 < v <= 1.0):
            raise ValueError("reporter.poll_interval must be in (0, 1] seconds")
        return v

    @field_validator("min_period")
    @classmethod
    def _positive_min_period(cls, v: float) -> float:
        if not v > 0:
            raise ValueError("reporter.min_period must be > 0")
        return v


class PowerConfig(BaseModel):
    enabled: bool = False
    power_channel: str = ""
    slave_system: str = ""
    slave_entity: str = ""
    activation_time: float = 30.0
    deactivation_time: float = 10.0
    max_clock_skew: float = 1.0
    poll_interval: float = 1.0

    @field_validator("activation_time", "deactivation_time")
    @classmethod
    def _positive_time(cls, v: float) -> float:
        if not v > 0:
            raise ValueError("power activation/deactivation times must be > 0")
        return v

    @field_validator("max_clock_skew")
    @classmethod
    def _non_negative_skew(cls, v: float) -> float:
        if v < 0:
            raise ValueError("power.max_clock_skew must be >= 0")
        return v

    @field_validator("poll_interval")
    @classmethod
    def _bounded_poll(cls, v: float) -> float:
        if not (0.0 < v <= 1.0):
            raise ValueError("power.poll_interval must be in (0, 1] seconds")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_output: bool = True
    json_format: Optional[bool] = None

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    Supervisors runtime settings.

    Priority (highest to lowest):
      1. config.yaml values (passed as init kwargs)
      2. Environment variables (nested with "__", e.g. REPORTER__ACOUSTIC_REPORTS)
      3. .env file
      4. Field defaults

    Nested sections are deep-merged, so an env var can still set a key the
    YAML section leaves out.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    system: SystemConfig = Field(default_factory=SystemConfig)
    reporter: ReporterConfig = Field(default_factory=ReporterConfig)
    power: PowerConfig = Field(default_factory=PowerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("system", mode="before")
    @classmethod
    def _coerce_system(cls, v: Any) -> Any:
        return SystemConfig(**v) if isinstance(v, dict) else v

    @field_validator("reporter", mode="before")
    @classmethod
    def _coerce_reporter(cls, v: Any) -> Any:
        return ReporterConfig(**v) if isinstance(v, dict) else v

    @field_validator("power", mode="before")
    @classmethod
    def _coerce_power(cls, v: Any) -> Any:
        return PowerConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def system_name(self) -> str:
        return self.system.name

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    def validate_all(self) -> None:
        """
        Cross-section startup validation. Raises ConfigError listing every
        problem found.

        Field validators catch per-value errors at parse time; this catches
        combinations they cannot see.
        """
        errors: list[str] = []

        # ── At least one task must run ──────────────────────────────────────
        if not (self.reporter.enabled or self.power.enabled):
            errors.append(
                "Both reporter.enabled and power.enabled are false — "
                "nothing would run."
            )

        # ── Power sequencer needs its wiring ────────────────────────────────
        if self.power.enabled:
            for name in ("power_channel", "slave_system", "slave_entity"):
                if not getattr(self.power, name).strip():
                    errors.append(f"power.{name} must be set when power.enabled is true.")
            if self.power.slave_system.strip() == self.system.name:
                errors.append(
                    f"power.slave_system '{self.power.slave_system}' must differ "
                    f"from system.name."
                )

        # ── Report all errors together ───────────────────────────────────────
        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nSupervisors startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your .env file "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = _threading.Lock()

_KNOWN_SECTIONS = {"system", "reporter", "power", "logging"}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. SUPERVISORS_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("SUPERVISORS_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging config.yaml with environment variables."""
    global _singleton
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}

    instance = Settings(**init_kwargs)
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """Return the global Settings singleton, loading defaults on first use."""
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            _singleton = Settings(**{
                k: v
                for k, v in _load_yaml(_resolve_config_path(None)).items()
                if k in _KNOWN_SECTIONS
            })
    return _singleton

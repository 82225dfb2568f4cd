"""Vigil — Configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. System config: /etc/vigil/config.yaml
    3. User config:   ~/.vigil/config.yaml
    4. An explicit ``--config`` file
    5. Environment variables prefixed with VIGIL_ (sections no file sets)

Call ``Settings.load()`` once at startup and pass the sub-sections down to
the components that need them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class SupervisorConfig(BaseModel):
    """Scheduling, timeout and backoff policy for watcher loops."""

    checker_timeout_seconds: Annotated[float, Field(gt=0, le=3600)] = Field(
        default=30.0,
        description="Upper bound on a single checker call.",
    )
    sink_timeout_seconds: Annotated[float, Field(gt=0, le=600)] = Field(
        default=10.0,
        description="Upper bound on a single event sink publish.",
    )
    base_backoff_seconds: Annotated[float, Field(gt=0, le=3600)] = 1.0
    max_backoff_seconds: Annotated[float, Field(gt=0, le=86_400)] = 300.0
    backoff_jitter: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.1,
        description="Fraction of each backoff delay that is randomised away.",
    )
    max_consecutive_failures: Annotated[int, Field(ge=1, le=1000)] = Field(
        default=5,
        description="Checker failures in a row before a watcher is deactivated.",
    )
    shutdown_timeout_seconds: Annotated[float, Field(gt=0, le=300)] = Field(
        default=5.0,
        description="How long a stopping loop may take before it is cancelled outright.",
    )
    command_queue_size: Annotated[int, Field(ge=1, le=100_000)] = 256
    reload_interval_seconds: Annotated[float, Field(ge=0)] = Field(
        default=0.0,
        description="Re-read active watchers from the store every N seconds. 0 = off.",
    )

    @model_validator(mode="after")
    def _backoff_bounds(self) -> "SupervisorConfig":
        if self.max_backoff_seconds < self.base_backoff_seconds:
            raise ValueError("max_backoff_seconds must be >= base_backoff_seconds")
        return self


class StoreConfig(BaseModel):
    db_path: Path = Field(
        default=Path("~/.vigil/watchers.db"),
        description="SQLite database path for watcher persistence.",
    )


class SinkConfig(BaseModel):
    events_file: Path | None = Field(
        default=Path("~/.vigil/events.ndjson"),
        description="NDJSON file receiving fired events. None = discard.",
    )


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VIGIL_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from YAML files + environment variables."""
        data: dict[str, object] = {}

        candidates = [
            Path("/etc/vigil/config.yaml"),
            Path.home() / ".vigil" / "config.yaml",
        ]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                import yaml

                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)


# Module-level singleton, replaced by ``Settings.load()`` at startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings

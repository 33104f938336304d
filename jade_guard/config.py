"""JADE Guard — Runtime configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. Environment variables prefixed with JADE_
    3. System config: /etc/jade-guard/config.yaml
    4. User config:   ~/.jade/config.yaml
    5. Explicit config file passed to ``Settings.load()``

File values are passed as init arguments, which pydantic-settings ranks
above the environment.

Call ``Settings.load()`` once at runtime startup and pass the instance down;
``get_settings()`` caches a module-level singleton for the CLI.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jade_guard.policy.models import CapabilityFlag


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class ChannelConfig(BaseModel):
    request_timeout_ms: Annotated[int, Field(ge=10, le=60_000)] = Field(
        default=2000,
        description=(
            "Deadline for every cross-boundary request.  A request with no "
            "matched response by then resolves to a denial."
        ),
    )

    @property
    def request_timeout(self) -> float:
        return self.request_timeout_ms / 1000.0


class AuditConfig(BaseModel):
    max_entries: Annotated[int, Field(ge=1, le=100_000)] = Field(
        default=1000,
        description="In-memory audit log cap (most recent entries kept).",
    )
    persisted_entries: Annotated[int, Field(ge=1, le=10_000)] = Field(
        default=100,
        description="Number of most recent entries written to storage on each append.",
    )
    default_query_limit: Annotated[int, Field(ge=1, le=10_000)] = 50


class StorageConfig(BaseModel):
    backend: Literal["memory", "sqlite"] = "sqlite"
    path: Path = Path("~/.jade/storage.db")


class PresetConfig(BaseModel):
    """An operator-defined origin preset, merged over the built-in ones."""

    capabilities: dict[CapabilityFlag, bool] = Field(default_factory=dict)
    whitelisted: bool = False
    risk_score: Annotated[int, Field(ge=0, le=100)] = 0


class PolicyConfig(BaseModel):
    extra_presets: dict[str, PresetConfig] = Field(
        default_factory=dict,
        description="Origin → preset.  Overrides a built-in preset with the same origin.",
    )


class AlertConfig(BaseModel):
    sensitive_apis: list[str] = Field(
        default_factory=lambda: ["geolocation", "mediaDevices", "clipboard", "cookies"],
        description="API names whose blocks raise a capability_blocked alert.",
    )


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None
    audit_file: Path | None = Path("~/.jade/audit.ndjson")


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="JADE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    alerts: AlertConfig = Field(default_factory=AlertConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("storage", mode="before")
    @classmethod
    def expand_storage_path(cls, v: object) -> object:
        if isinstance(v, dict) and isinstance(v.get("path"), str):
            v["path"] = Path(v["path"]).expanduser()
        return v

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, object] = {}

        candidates = [
            Path("/etc/jade-guard/config.yaml"),
            Path.home() / ".jade" / "config.yaml",
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


# Module-level singleton — replaced by ``Settings.load()`` at startup.
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

"""
Process settings for LocalLens.

Settings come from defaults, overridden by LOCALLENS_* environment
variables, overridden by explicit CLI options. The capture config is
separate (see locallens.capture); a YAML file named here only provides
its starting point.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from locallens.errors import ConfigValidationError
from locallens.schema import CaptureConfig, load_capture_config
from locallens.store.base import MAX_ENTRIES

DEFAULT_DB_PATH = Path("~/.locallens/locallens.db")
DEFAULT_PORT = 8765

ENV_OVERRIDES = {
    "db_path": "LOCALLENS_DB",
    "host": "LOCALLENS_HOST",
    "port": "LOCALLENS_PORT",
    "max_entries": "LOCALLENS_MAX_ENTRIES",
    "echo_events": "LOCALLENS_ECHO_EVENTS",
    "capture_config_path": "LOCALLENS_CAPTURE_CONFIG",
    "allowed_domains": "LOCALLENS_ALLOWED_DOMAINS",
}


def default_ignored_markers(port: int) -> list[str]:
    """URL fragments identifying LocalLens's own traffic."""
    return [f"localhost:{port}", f"127.0.0.1:{port}", "/health-browser-relay", "browser-relay"]


class Settings(BaseModel):
    """
    Runtime settings.

    Attributes:
        db_path: SQLite file (or ":memory:")
        host: HTTP bind address
        port: HTTP port
        max_entries: Row cap for each table
        echo_events: Echo accepted records to the process log
        ignored_url_markers: Network URLs containing any of these are dropped
        ignored_page_prefixes: Records from pages starting with these are dropped
        skip_static_assets: Drop images, fonts, css/js/map requests
        capture_config_path: YAML file with the starting capture config
        allowed_domains: Domains producers should restrict capture to (empty = all)
    """

    model_config = ConfigDict(extra="forbid")

    db_path: Path | str = Field(default=DEFAULT_DB_PATH)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    max_entries: int = Field(default=MAX_ENTRIES, gt=0)
    echo_events: bool = Field(default=True)
    ignored_url_markers: list[str] | None = Field(default=None)
    ignored_page_prefixes: list[str] = Field(default_factory=lambda: ["chrome-extension://"])
    skip_static_assets: bool = Field(default=True)
    capture_config_path: Path | None = Field(default=None)
    allowed_domains: list[str] = Field(default_factory=list)

    @field_validator("allowed_domains", mode="before")
    @classmethod
    def split_domains(cls, v: object) -> object:
        """Accept a comma-separated string, as the environment gives it."""
        if isinstance(v, str):
            return [d.strip() for d in v.split(",") if d.strip()]
        return v

    def url_markers(self) -> list[str]:
        """Configured self-traffic markers, or the defaults for this port."""
        if self.ignored_url_markers is not None:
            return list(self.ignored_url_markers)
        return default_ignored_markers(self.port)

    def initial_capture_config(self) -> CaptureConfig:
        """Capture config to start with (and reset to)."""
        if self.capture_config_path is None:
            return CaptureConfig()
        try:
            return load_capture_config(self.capture_config_path)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigValidationError(
                field="capture_config_path",
                reason=f"cannot read {self.capture_config_path}: {e}",
            ) from e
        except PydanticValidationError as e:
            first = e.errors(include_url=False)[0]
            raise ConfigValidationError(
                field=".".join(str(p) for p in first["loc"]) or None,
                reason=first["msg"],
                context={"path": str(self.capture_config_path)},
            ) from e


def get_env_overrides() -> dict[str, str]:
    """Collect LOCALLENS_* variables that are set."""
    overrides: dict[str, str] = {}
    for key, env_var in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None and value != "":
            overrides[key] = value
    return overrides


def load_settings(**explicit: Any) -> Settings:
    """
    Build Settings from the environment plus explicit overrides.

    Explicit values that are None are ignored, so CLI options can be
    passed straight through.

    Raises:
        ConfigValidationError: If a value has the wrong type or range
    """
    data: dict[str, Any] = get_env_overrides()
    data.update({k: v for k, v in explicit.items() if v is not None})
    try:
        return Settings.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors(include_url=False)[0]
        raise ConfigValidationError(
            field=".".join(str(p) for p in first["loc"]) or None,
            reason=first["msg"],
        ) from e

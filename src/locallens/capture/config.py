"""
Holder for the process-wide capture configuration.

There is exactly one current CaptureConfig per running service. It lives
in memory only: a restart returns to the baseline. The baseline is the
documented defaults, or the YAML file the service was started with.

The holder is handed to whatever needs the config (the capture filter,
the HTTP adapter, the CLI) instead of being a module global. Reads return
the immutable current model; updates build a new model and swap it in
under a lock.
"""

import logging
import threading
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from locallens.errors import ConfigValidationError
from locallens.schema import CaptureConfig

logger = logging.getLogger(__name__)


def _to_config_error(error: PydanticValidationError) -> ConfigValidationError:
    first = error.errors(include_url=False)[0]
    field = ".".join(str(p) for p in first["loc"]) or None
    return ConfigValidationError(field=field, reason=first["msg"])


class CaptureConfigHolder:
    """
    Thread-safe owner of the current CaptureConfig.

    Usage:
        holder = CaptureConfigHolder()
        holder.update({"captureMode": "include", "urlPatterns": ["*/api/*"]})
        config = holder.get()
        holder.reset()
    """

    def __init__(self, baseline: CaptureConfig | None = None) -> None:
        """
        Initialize the holder.

        Args:
            baseline: Config to start from and to reset to
                      (defaults to CaptureConfig())
        """
        self._baseline = baseline or CaptureConfig()
        self._current = self._baseline
        self._lock = threading.Lock()

    @property
    def baseline(self) -> CaptureConfig:
        """The config reset() returns to."""
        return self._baseline

    def get(self) -> CaptureConfig:
        """Return the current config."""
        with self._lock:
            return self._current

    def update(self, changes: Mapping[str, Any]) -> CaptureConfig:
        """
        Merge a partial update into the current config.

        Keys may be camelCase (wire) or snake_case. Omitted keys keep their
        current values. Nothing changes if any key is invalid.

        Raises:
            ConfigValidationError: If the update has a wrong type, an
                out-of-range value or an unknown key
        """
        if not isinstance(changes, Mapping):
            raise ConfigValidationError(reason="config update must be an object")

        with self._lock:
            merged = self._current.model_dump(by_alias=True)
            for key, value in changes.items():
                merged[self._wire_key(key)] = value
            try:
                config = CaptureConfig.model_validate(merged)
            except PydanticValidationError as e:
                raise _to_config_error(e) from e
            self._current = config

        logger.info("Capture config updated: %s", sorted(changes))
        return config

    def replace(self, config: CaptureConfig | Mapping[str, Any]) -> CaptureConfig:
        """Swap in a whole new config; missing keys take their defaults."""
        if not isinstance(config, CaptureConfig):
            try:
                config = CaptureConfig.model_validate(config)
            except PydanticValidationError as e:
                raise _to_config_error(e) from e
        with self._lock:
            self._current = config
        logger.info("Capture config replaced")
        return config

    def reset(self) -> CaptureConfig:
        """Return to the baseline config."""
        with self._lock:
            self._current = self._baseline
        logger.info("Capture config reset to defaults")
        return self._baseline

    @staticmethod
    def _wire_key(key: str) -> str:
        field = CaptureConfig.model_fields.get(key)
        if field is not None and field.alias:
            return field.alias
        return key

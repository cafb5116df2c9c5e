# src/bulkimport/plugins/config_base.py
"""Base class for typed observer configurations.

Observers receive their options as a plain dict (straight from the settings
file) and validate them into a frozen model:

    class RequiredValuesConfig(ObserverConfig):
        columns: list[str]

    cfg = RequiredValuesConfig.from_dict(options)
"""

from typing import Any, Self

from pydantic import BaseModel, ValidationError


class PluginConfigError(Exception):
    """Raised when observer configuration is invalid."""


class ObserverConfig(BaseModel):
    """Base for observer option models. Unknown keys are rejected."""

    model_config = {"extra": "forbid", "frozen": True}

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> Self:
        """Validate config, converting failures into PluginConfigError."""
        if not isinstance(config, dict):
            raise PluginConfigError(f"Invalid configuration for {cls.__name__}: config must be a dict, got {type(config).__name__}.")
        try:
            return cls.model_validate(config)
        except ValidationError as e:
            raise PluginConfigError(f"Invalid configuration for {cls.__name__}: {e}") from e

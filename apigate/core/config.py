"""Configuration loading with pydantic-settings.

Precedence (first wins):
1. Direct kwargs to load_settings() (CLI options)
2. Environment variables (APIGATE_<FIELD>)
3. YAML config file (--config, else ./.apigate.yaml when present)
4. Built-in defaults

Environment Variable Format:
    APIGATE_LOG_LEVEL=DEBUG
    APIGATE_MAX_WORKERS=8
    APIGATE_STRUCT_FIELD_POLICY=positional
    APIGATE_EXCLUDE='["examples", "benchmarks"]'
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from apigate.core.classifier import StructFieldPolicy
from apigate.core.exceptions import ConfigError

DEFAULT_CONFIG_FILE = Path(".apigate.yaml")

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config at {path}: {e}", path=path) from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config at {path} must be a mapping", path=path)
    return data


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return {k.replace("-", "_"): v for k, v in self._yaml_config.items()}


class Settings(BaseSettings):
    """Runtime settings for apigate."""

    model_config = SettingsConfigDict(
        env_prefix="APIGATE_",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: LogLevel = Field(
        default="WARNING",
        description="Log level for diagnostics written to stderr.",
    )
    log_format: Literal["console", "json"] = "console"
    max_workers: int = Field(
        default=4,
        ge=1,
        description="Thread pool size for extraction and diffing.",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Extra glob patterns excluded from extraction.",
    )
    strict_classification: bool = Field(
        default=False,
        description="Abort the whole diff when a symbol cannot be classified.",
    )
    struct_field_policy: StructFieldPolicy = StructFieldPolicy.NAMED
    fail_on_incompatible: bool = Field(
        default=True,
        description="Exit nonzero when incompatible changes are found.",
    )


def _make_settings_class(yaml_config: dict[str, Any]) -> type[Settings]:
    """Create a Settings subclass bound to one YAML source (thread-safe)."""

    class _FileSettings(Settings):
        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return _FileSettings


def load_settings(config_file: Path | None = None, **overrides: Any) -> Settings:
    """Load settings: defaults < YAML < env vars < overrides.

    Overrides whose value is None are ignored, so unset CLI options fall
    through to lower layers.

    Raises:
        ConfigError: On a missing explicit config file, invalid YAML, or
            values that fail validation.
    """
    if config_file is not None and not config_file.exists():
        raise ConfigError(f"Config file not found: {config_file}", path=config_file)

    path = config_file or DEFAULT_CONFIG_FILE
    yaml_config = _load_yaml(path)
    kwargs = {k: v for k, v in overrides.items() if v is not None}

    settings_cls = _make_settings_class(yaml_config)
    try:
        return settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError(f"Invalid value for '{field}': {err['msg']}", path=path) from e

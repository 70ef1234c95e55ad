"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (MDCMETA__MDC__URL=...)
  3. mdcmeta.yaml           (searched in cwd, then the platform config dir)
  4. Hardcoded defaults

The config file is optional. Editor hosts usually build ``MetadataSettings``
directly from their own configuration, using the camelCase keys
(``componentMetadataURL`` etc.) as aliases.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_CONFIG_DIR = platformdirs.user_config_dir("mdcmeta")
_CONFIG_FILE_NAME = "mdcmeta.yaml"

OriginKind = Literal["local", "remote", "none"]


def _find_config_file() -> str | None:
    """Return the path of the first mdcmeta.yaml found, or None."""
    candidates = [
        Path(_CONFIG_FILE_NAME),
        Path(_DEFAULT_CONFIG_DIR) / _CONFIG_FILE_NAME,
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class MetadataSettings(BaseModel):
    """Where component metadata comes from and whether completions are on."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    enabled: bool = Field(default=False, alias="enableComponentMetadataCompletions")
    url: str | None = Field(default=None, alias="componentMetadataURL")
    local_file_pattern: str | None = Field(
        default=None, alias="componentMetadataLocalFilePattern"
    )
    debug: bool = False
    fetch_timeout_seconds: float = Field(default=10.0, gt=0, alias="fetchTimeoutSeconds")
    workspace_root: Path = Field(default=Path("."), alias="workspaceRoot")

    @field_validator("url", "local_file_pattern")
    @classmethod
    def blank_is_unset(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("componentMetadataURL must use http or https scheme")
        return v

    @property
    def preferred_origin(self) -> OriginKind:
        """Origin tried first. A local pattern wins over the URL when both are set."""
        if self.local_file_pattern:
            return "local"
        if self.url:
            return "remote"
        return "none"

    @property
    def fingerprint(self) -> str:
        """Identifies the configured origin. Changes whenever a fetch would read elsewhere."""
        key = f"{self.local_file_pattern or ''}|{self.url or ''}|{self.workspace_root}"
        return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: MDCMETA__MDC__DEBUG=true
        env_prefix="MDCMETA__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
        extra="forbid",
    )

    mdc: MetadataSettings = MetadataSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )

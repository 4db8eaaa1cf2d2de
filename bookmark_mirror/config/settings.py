from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from bookmark_mirror.domain.exceptions import ConfigError

from ._validators import load_tag_aliases_file
from .database import DatabaseConfig
from .integrations import SyncSettings, TagAliasConfig, UpstreamConfig

logger = logging.getLogger(__name__)


class RuntimeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")  # nosec B104
    api_port: int = Field(default=3000, validation_alias=AliasChoices("API_PORT", "PORT"))

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: Any) -> str:
        log_level = str(value or "INFO").upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if log_level not in valid_levels:
            msg = f"Invalid log level: {value}. Must be one of {valid_levels}"
            raise ValueError(msg)
        return log_level

    @field_validator("api_port", mode="before")
    @classmethod
    def _validate_port(cls, value: Any) -> int:
        try:
            port = int(str(value or 3000))
        except ValueError as exc:
            msg = "API port must be a valid integer"
            raise ValueError(msg) from exc
        if port < 1 or port > 65535:
            msg = "API port must be between 1 and 65535"
            raise ValueError(msg)
        return port

    @field_validator("log_file", mode="before")
    @classmethod
    def _validate_log_file(cls, value: Any) -> str | None:
        if value is None:
            return None
        trimmed = str(value).strip()
        return trimmed or None


@dataclass(frozen=True)
class AppConfig:
    upstream: UpstreamConfig
    sync: SyncSettings
    tag_aliases: TagAliasConfig
    runtime: RuntimeConfig
    database: DatabaseConfig


class Settings(BaseSettings):
    """Application settings loaded automatically from environment variables.

    Nested models are populated by matching ``validation_alias`` on each field.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    upstream: UpstreamConfig
    sync: SyncSettings = Field(default_factory=SyncSettings)
    tag_aliases: TagAliasConfig = Field(default_factory=TagAliasConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    @model_validator(mode="before")
    @classmethod
    def _build_nested_from_env(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Build nested config objects from flat environment variables.

        Constructor arguments take precedence over the environment.
        """
        if not isinstance(data, dict):
            return data

        result = dict(data)
        merged_source = {**os.environ, **data}

        for field_name, field_info in cls.model_fields.items():
            annotation = field_info.annotation
            if not isinstance(annotation, type) or not issubclass(annotation, BaseModel):
                continue

            nested_data: dict[str, Any] = {}
            for nested_field_name, nested_field in annotation.model_fields.items():
                env_value = cls._resolve_env_value(merged_source, nested_field)
                if env_value is not None:
                    nested_data[nested_field_name] = env_value

            if nested_data:
                if field_name in result and isinstance(result[field_name], dict):
                    result[field_name] = {**nested_data, **result[field_name]}
                else:
                    result[field_name] = nested_data

        return result

    @staticmethod
    def _resolve_env_value(data: dict[str, Any], field: Any) -> Any | None:
        """Resolve environment variable value for a field using its aliases."""
        aliases: list[str] = []
        alias = field.validation_alias
        if isinstance(alias, AliasChoices):
            aliases.extend(choice for choice in alias.choices if isinstance(choice, str))
        elif isinstance(alias, str):
            aliases.append(alias)
        if field.alias:
            aliases.append(field.alias)

        for name in aliases:
            if name in data:
                return data[name]
        return None

    def as_app_config(self) -> AppConfig:
        return AppConfig(
            upstream=self.upstream,
            sync=self.sync,
            tag_aliases=self.tag_aliases,
            runtime=self.runtime,
            database=self.database,
        )


def load_config(**overrides: Any) -> AppConfig:
    """Load application configuration from environment variables and ``.env``.

    Aliases from ``TAG_ALIASES_FILE`` are merged under those given inline via
    ``TAG_ALIASES`` (inline entries win).

    Raises:
        ConfigError: If validation fails or the alias file cannot be used.
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        msg = f"Configuration validation failed: {exc}"
        raise ConfigError(msg) from exc

    cfg = settings.as_app_config()
    alias_cfg = cfg.tag_aliases
    if alias_cfg.aliases_file:
        file_aliases = load_tag_aliases_file(alias_cfg.aliases_file)
        alias_cfg = alias_cfg.model_copy(update={"aliases": {**file_aliases, **alias_cfg.aliases}})
        cfg = AppConfig(
            upstream=cfg.upstream,
            sync=cfg.sync,
            tag_aliases=alias_cfg,
            runtime=cfg.runtime,
            database=cfg.database,
        )

    logger.info(
        "config_loaded",
        extra={
            "upstream_user_id": cfg.upstream.user_id,
            "db_path": cfg.database.path,
            "tag_aliases": len(cfg.tag_aliases.aliases),
            "tag_alias_policy": cfg.tag_aliases.policy,
        },
    )
    return cfg

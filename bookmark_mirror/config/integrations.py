from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationInfo, field_validator

from ._validators import _ensure_session_cookie, _parse_tag_aliases

logger = logging.getLogger(__name__)

DEFAULT_UPSTREAM_URL = "https://www.pixiv.net"


class UpstreamConfig(BaseModel):
    """Credentials and transport settings for the upstream bookmark collection."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: int = Field(validation_alias="UPSTREAM_USER_ID")
    session_id: SecretStr = Field(validation_alias="UPSTREAM_SESSION_ID")
    base_url: str = Field(default=DEFAULT_UPSTREAM_URL, validation_alias="UPSTREAM_BASE_URL")
    timeout_sec: float = Field(default=30.0, validation_alias="UPSTREAM_TIMEOUT_SEC")
    max_retries: int = Field(default=2, validation_alias="UPSTREAM_MAX_RETRIES")

    @field_validator("user_id", mode="before")
    @classmethod
    def _validate_user_id(cls, value: Any) -> int:
        try:
            parsed = int(str(value).strip())
        except ValueError as exc:
            msg = "Upstream user id must be a valid integer"
            raise ValueError(msg) from exc
        if parsed <= 0:
            msg = "Upstream user id must be positive"
            raise ValueError(msg)
        return parsed

    @field_validator("session_id", mode="before")
    @classmethod
    def _validate_session_id(cls, value: Any) -> str:
        raw = value.get_secret_value() if isinstance(value, SecretStr) else str(value or "")
        return _ensure_session_cookie(raw, name="Upstream session id")

    @field_validator("base_url", mode="before")
    @classmethod
    def _validate_base_url(cls, value: Any) -> str:
        url = str(value or DEFAULT_UPSTREAM_URL).strip()
        if not url:
            return DEFAULT_UPSTREAM_URL
        if not url.startswith(("http://", "https://")):
            msg = "Upstream base URL must start with http:// or https://"
            raise ValueError(msg)
        return url.rstrip("/")

    @field_validator("timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        if value in (None, ""):
            return 30.0
        try:
            parsed = float(str(value))
        except ValueError as exc:
            msg = "Upstream timeout must be a valid number"
            raise ValueError(msg) from exc
        if parsed <= 0 or parsed > 600:
            msg = "Upstream timeout must be between 0 and 600 seconds"
            raise ValueError(msg)
        return parsed

    @field_validator("max_retries", mode="before")
    @classmethod
    def _validate_retries(cls, value: Any) -> int:
        if value in (None, ""):
            return 2
        try:
            parsed = int(str(value))
        except ValueError as exc:
            msg = "Upstream max retries must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 10:
            msg = "Upstream max retries must be between 0 and 10"
            raise ValueError(msg)
        return parsed


class SyncSettings(BaseModel):
    """Timing of the background reconciliation loop."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    cooldown_sec: float = Field(default=10.0, validation_alias="SYNC_COOLDOWN_SEC")
    backfill_page_delay_sec: float = Field(default=0.5, validation_alias="BACKFILL_PAGE_DELAY_SEC")
    tag_enrichment_enabled: bool = Field(default=True, validation_alias="TAG_ENRICHMENT_ENABLED")

    @field_validator("cooldown_sec", "backfill_page_delay_sec", mode="before")
    @classmethod
    def _validate_seconds(cls, value: Any, info: ValidationInfo) -> float:
        if value in (None, ""):
            default = cls.model_fields[info.field_name].default
            return float(default)
        try:
            parsed = float(str(value))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a valid number"
            raise ValueError(msg) from exc
        if parsed < 0:
            msg = f"{info.field_name.replace('_', ' ').capitalize()} cannot be negative"
            raise ValueError(msg)
        return parsed


class TagAliasConfig(BaseModel):
    """User-defined search terms that expand to literal upstream tags."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    aliases: dict[str, tuple[str, ...]] = Field(
        default_factory=dict,
        validation_alias="TAG_ALIASES",
        description="JSON object (term -> [tags]) or JSON list of [term, [tags]] pairs",
    )
    aliases_file: str | None = Field(default=None, validation_alias="TAG_ALIASES_FILE")
    policy: str = Field(
        default="exclusive",
        validation_alias="TAG_ALIAS_POLICY",
        description="'exclusive' uses alias targets only; 'union' adds tag matches too",
    )

    @field_validator("aliases", mode="before")
    @classmethod
    def _parse_aliases(cls, value: Any) -> dict[str, tuple[str, ...]]:
        return _parse_tag_aliases(value)

    @field_validator("aliases_file", mode="before")
    @classmethod
    def _validate_aliases_file(cls, value: Any) -> str | None:
        if value is None:
            return None
        trimmed = str(value).strip()
        return trimmed or None

    @field_validator("policy", mode="before")
    @classmethod
    def _validate_policy(cls, value: Any) -> str:
        policy = str(value or "exclusive").lower().strip()
        if policy not in {"exclusive", "union"}:
            msg = f"Invalid tag alias policy: {policy}. Must be 'exclusive' or 'union'"
            raise ValueError(msg)
        return policy

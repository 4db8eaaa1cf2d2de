"""Pydantic models for the upstream ajax API envelopes."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator


class UpstreamEnvelope(BaseModel):
    """Every ajax response: ``{"error": bool, "message": str, "body": ...}``."""

    error: bool = False
    message: str = ""
    body: Any = None

    model_config = {"extra": "ignore"}


class UpstreamWork(BaseModel):
    """Shape check for one bookmarked work.

    Works deleted upstream still appear in the list with placeholder fields of
    the wrong type (numeric ids, missing tags); those fail validation and are
    skipped by the client.
    """

    id: StrictStr
    title: StrictStr
    tags: list[StrictStr]
    url: StrictStr
    user_id: StrictStr = Field(alias="userId")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class BookmarkPageBody(BaseModel):
    works: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0

    model_config = {"extra": "ignore"}


class VocabularyTag(BaseModel):
    tag: str
    cnt: int


class BookmarkTagsBody(BaseModel):
    public: list[VocabularyTag] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class TagTranslation(BaseModel):
    en: str | None = None
    romaji: str | None = None

    model_config = {"extra": "ignore"}


class RelatedTag(BaseModel):
    tag: str
    translation: TagTranslation = Field(default_factory=TagTranslation)

    model_config = {"extra": "ignore"}


class Breadcrumbs(BaseModel):
    successor: list[RelatedTag] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class TagSearchBody(BaseModel):
    """Result of a tag search: related tags plus per-tag translations."""

    tag: str | None = None
    breadcrumbs: Breadcrumbs = Field(default_factory=Breadcrumbs)
    tag_translation: dict[str, TagTranslation] = Field(
        default_factory=dict, alias="tagTranslation"
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("breadcrumbs", mode="before")
    @classmethod
    def _empty_breadcrumbs(cls, value: Any) -> Any:
        # An empty PHP array serialises as [] rather than {}
        return value or {}

    @field_validator("tag_translation", mode="before")
    @classmethod
    def _empty_translation(cls, value: Any) -> Any:
        return value or {}

    def romaji_for(self, tag: str) -> str | None:
        lowered = tag.lower()
        for key, translation in self.tag_translation.items():
            if key.lower() == lowered and translation.romaji:
                return translation.romaji
        return None

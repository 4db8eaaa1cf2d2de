"""Fill in readable names for freshly referenced tags."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from bookmark_mirror.domain.exceptions import MirrorError
from bookmark_mirror.domain.models import normalize_tags

if TYPE_CHECKING:
    from bookmark_mirror.adapters.upstream.models import TagSearchBody
    from bookmark_mirror.domain.models import BookmarkItem

logger = logging.getLogger(__name__)


class TagSearchSource(Protocol):
    async def search_tag(self, tag: str) -> TagSearchBody: ...


class TagNameRepository(Protocol):
    async def async_unnamed(self, tag_ids: list[str]) -> list[str]: ...

    async def async_set_name(self, tag_id: str, name: str) -> bool: ...


def translation_to_name(text: str) -> str:
    """``"Original Character"`` -> ``"original_character"``."""
    return "_".join(text.split()).lower()


class TagNameEnricher:
    """Names tags from upstream translations.

    A tag search returns related tags, often including the searched tag, each
    with an English translation; every related tag is named after it. If the
    searched tag is not among them it is named after its romanisation, or after
    itself when there is none.
    """

    def __init__(self, source: TagSearchSource, tags: TagNameRepository) -> None:
        self._source = source
        self._tags = tags

    async def enrich_items(self, items: list[BookmarkItem]) -> int:
        tag_ids = normalize_tags([tag for item in items for tag in item.tags])
        return await self.enrich(tag_ids)

    async def enrich(self, tag_ids: list[str]) -> int:
        """Name every unnamed tag in ``tag_ids``; returns how many tags were searched.

        A failure on one tag is logged and the rest are still processed.
        """
        pending = await self._tags.async_unnamed(tag_ids)
        named: set[str] = set()
        searched = 0
        for tag_id in pending:
            if tag_id in named:
                continue
            try:
                named |= await self._enrich_one(tag_id)
            except MirrorError as exc:
                logger.warning("tag_name_enrichment_failed", extra={"tag": tag_id, "error": str(exc)})
                continue
            searched += 1
        if searched:
            logger.info("tag_names_enriched", extra={"searched": searched, "named": len(named)})
        return searched

    async def _enrich_one(self, tag_id: str) -> set[str]:
        result = await self._source.search_tag(tag_id)
        named: set[str] = set()
        for related in result.breadcrumbs.successor:
            if not related.translation.en:
                continue
            if await self._tags.async_set_name(related.tag, translation_to_name(related.translation.en)):
                named.add(related.tag.lower())

        if tag_id not in named:
            romaji = result.romaji_for(tag_id)
            await self._tags.async_set_name(tag_id, translation_to_name(romaji) if romaji else tag_id)
            named.add(tag_id)
        return named

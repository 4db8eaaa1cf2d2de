"""Resolve free-text tag queries into structured tag filters."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bookmark_mirror.domain.exceptions import StoreError
from bookmark_mirror.domain.models import TagFilter

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from bookmark_mirror.sync.protocols import TagStore

logger = logging.getLogger(__name__)

MAX_FILTER_TERMS = 5
ALIAS_POLICIES = frozenset({"exclusive", "union"})


class TagFilterResolver:
    """Turns ``"nsfw cat"`` into ``(r-18 OR r-18g) AND (cat)``.

    Terms are whitespace separated, lower-cased and capped at five. A term that
    names an alias resolves to the alias' literal tags. Any other term matches
    itself plus every tag record whose id or name equals it. With the ``union``
    policy an alias term also picks up those tag-record matches. An alias
    with no tags matches no bookmark.

    Resolution never raises: if the tag store is unavailable a term falls back
    to matching itself literally.
    """

    def __init__(
        self,
        tags: TagStore,
        aliases: Mapping[str, Sequence[str]] | None = None,
        *,
        policy: str = "exclusive",
        max_terms: int = MAX_FILTER_TERMS,
    ) -> None:
        if policy not in ALIAS_POLICIES:
            msg = f"Unknown alias policy: {policy}"
            raise ValueError(msg)
        self._tags = tags
        self._aliases = {
            term.lower(): tuple(target.lower() for target in targets)
            for term, targets in (aliases or {}).items()
        }
        self._policy = policy
        self._max_terms = max_terms

    @property
    def policy(self) -> str:
        return self._policy

    @staticmethod
    def split_terms(text: str | None, max_terms: int = MAX_FILTER_TERMS) -> list[str]:
        if not text:
            return []
        return [term.lower() for term in text.split()][:max_terms]

    async def resolve(self, text: str | None) -> TagFilter:
        groups = [await self._resolve_term(term) for term in self.split_terms(text, self._max_terms)]
        return TagFilter(groups=tuple(groups))

    async def _resolve_term(self, term: str) -> tuple[str, ...]:
        alias_targets = self._aliases.get(term)
        if alias_targets is not None and self._policy == "exclusive":
            return _unique(alias_targets)

        targets: list[str] = list(alias_targets or ())
        targets.append(term)
        try:
            records = await self._tags.async_resolve_name_or_id(term)
        except StoreError as exc:
            logger.warning("tag_filter_lookup_failed", extra={"term": term, "error": str(exc)})
            records = []
        targets.extend(record.id for record in records)
        return _unique(targets)


def _unique(values: Sequence[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))

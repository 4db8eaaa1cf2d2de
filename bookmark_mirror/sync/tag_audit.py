"""Compare local tag reference counts with the upstream tag vocabulary."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bookmark_mirror.domain.models import TagAuditReport

if TYPE_CHECKING:
    from bookmark_mirror.services.tag_counter import TagReferenceCounter
    from bookmark_mirror.sync.protocols import PagedSource, TagStore

logger = logging.getLogger(__name__)


class TagVocabularyAuditor:
    """Detects drift between upstream per-tag counts and local ``TagRecord`` totals.

    Upstream counts cover only public bookmarks and are therefore an audit
    signal, not a source of truth; repairs always recount from the mirror.
    """

    def __init__(
        self,
        source: PagedSource,
        tags: TagStore,
        counter: TagReferenceCounter,
    ) -> None:
        self._source = source
        self._tags = tags
        self._counter = counter

    async def audit(self, *, repair: bool = False) -> TagAuditReport:
        """Build a drift report; with ``repair`` rebuild local totals when drift is found.

        Raises:
            TransientSourceError: If the upstream vocabulary cannot be fetched
            StoreError: If local tags cannot be read
        """
        upstream: dict[str, int] = {}
        for entry in await self._source.fetch_tag_vocabulary():
            key = entry.tag.lower()
            upstream[key] = upstream.get(key, 0) + entry.count

        local = {
            record.id: record.total
            for record in await self._tags.async_list_all(sort_by_total_desc=False)
        }

        report = TagAuditReport(
            missing_locally={tag: count for tag, count in upstream.items() if tag not in local},
            missing_upstream={tag: total for tag, total in local.items() if tag not in upstream},
            mismatched={
                tag: (upstream[tag], total)
                for tag, total in local.items()
                if tag in upstream and upstream[tag] != total
            },
        )
        logger.info(
            "tag_audit_completed",
            extra={
                "upstream_tags": len(upstream),
                "local_tags": len(local),
                "missing_locally": len(report.missing_locally),
                "missing_upstream": len(report.missing_upstream),
                "mismatched": len(report.mismatched),
            },
        )

        if repair and report.has_drift:
            await self._counter.rebuild()
            report.repaired = True
        return report

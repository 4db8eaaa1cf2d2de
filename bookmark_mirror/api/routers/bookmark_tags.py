from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from bookmark_mirror.api.dependencies import get_container
from bookmark_mirror.api.responses import success_response
from bookmark_mirror.di.container import Container
from bookmark_mirror.infrastructure.persistence.sqlite.repositories.bookmark_tag_repository import (
    DEFAULT_TAG_LIST_LIMIT,
)

router = APIRouter()


@router.get("")
async def list_bookmark_tags(
    q: str = Query(default="", max_length=256),
    container: Container = Depends(get_container),
):
    """Most used tags first; ``q`` narrows to tags whose id or name contains any of its terms."""
    terms = q.split()
    repo = container.tag_repository()
    if terms:
        records = await repo.async_search(terms, limit=DEFAULT_TAG_LIST_LIMIT)
    else:
        records = await repo.async_list_all(limit=DEFAULT_TAG_LIST_LIMIT)
    return success_response([record.model_dump() for record in records])

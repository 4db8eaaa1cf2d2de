"""Bookmark listing and validation endpoints."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query

from bookmark_mirror.api.dependencies import get_container
from bookmark_mirror.api.responses import BookmarkPage, success_response
from bookmark_mirror.di.container import Container
from bookmark_mirror.infrastructure.persistence.sqlite.repositories.bookmark_repository import (
    MAX_FIND_LIMIT,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def list_bookmarks(
    tags: str = Query(default="", max_length=512),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=30, ge=0),
    sort: Literal["descending", "ascending"] = Query(default="descending"),
    container: Container = Depends(get_container),
):
    """Page through mirrored bookmarks matching a space-separated tag query."""
    tag_filter = await container.tag_filter_resolver().resolve(tags)
    repo = container.bookmark_repository()

    total = await repo.async_count(tag_filter)
    works = await repo.async_find(
        tag_filter,
        offset=offset,
        limit=min(limit, MAX_FIND_LIMIT),
        descending=sort == "descending",
    )
    return success_response(
        BookmarkPage(works=[item.to_document() for item in works], total=total)
    )


@router.get("/{bookmark_id}/validate")
async def validate_bookmark(
    bookmark_id: str,
    container: Container = Depends(get_container),
):
    """Check upstream that a mirrored bookmark still exists; gone bookmarks are removed."""
    valid = await container.validator().validate(bookmark_id)
    return success_response(valid)

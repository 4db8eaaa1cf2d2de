"""Upstream bookmark API client."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from bookmark_mirror.adapters.upstream.models import (
    BookmarkPageBody,
    BookmarkTagsBody,
    TagSearchBody,
    UpstreamEnvelope,
    UpstreamWork,
)
from bookmark_mirror.config.integrations import DEFAULT_UPSTREAM_URL
from bookmark_mirror.domain.exceptions import MirrorError, TransientSourceError
from bookmark_mirror.domain.models import BookmarkItem, SourcePage, TagVocabularyEntry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from typing import Self

    from bookmark_mirror.config.integrations import UpstreamConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# The upstream refuses larger pages.
PAGE_SIZE = 100

# HTTP status codes that should trigger a retry
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0  # seconds
DEFAULT_JITTER = 0.1  # 10% jitter

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


def _is_retryable_error(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, httpx.TransportError)


def _calculate_delay(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """Calculate delay with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        jitter: Jitter factor (0.1 = 10% random variation)

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (2**attempt), max_delay)
    return delay + delay * jitter * random.random()  # nosec B311


def _status_code(exc: Exception) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    operation_name: str = "operation",
) -> T:
    """Execute an async request with exponential backoff retry.

    Retryable failures are retried up to ``max_retries`` times; any other
    failure is raised at once. Every HTTP, transport or decoding failure
    leaves as ``TransientSourceError``.

    Raises:
        TransientSourceError: If the request fails for good
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except (httpx.HTTPError, ValueError) as e:
            if not _is_retryable_error(e):
                raise TransientSourceError(
                    f"{operation_name} failed: {e}",
                    {"operation": operation_name, "error_type": type(e).__name__},
                    status_code=_status_code(e),
                ) from e

            if attempt == max_retries:
                logger.error(
                    "upstream_retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": attempt + 1,
                        "error": str(e),
                    },
                )
                raise TransientSourceError(
                    f"{operation_name} failed after {attempt + 1} attempts: {e}",
                    {"operation": operation_name, "attempts": attempt + 1},
                    status_code=_status_code(e),
                ) from e

            delay = _calculate_delay(attempt, base_delay, max_delay, jitter)
            logger.warning(
                "upstream_retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "delay_seconds": round(delay, 2),
                    "error": str(e),
                },
            )
            await asyncio.sleep(delay)

    raise TransientSourceError(f"{operation_name} failed")


class UpstreamClient:
    """Async HTTP client for the upstream bookmark collection.

    Authenticates with the ``PHPSESSID`` session cookie. Pages are numbered
    from 1 and hold the newest bookmarks first.
    """

    page_size = PAGE_SIZE

    def __init__(
        self,
        user_id: int,
        session_id: str,
        base_url: str = DEFAULT_UPSTREAM_URL,
        timeout: float = 30.0,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        retry_max_delay: float = DEFAULT_MAX_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            user_id: Numeric id of the user whose bookmarks are mirrored
            session_id: Value of the ``PHPSESSID`` cookie
            base_url: Site root, e.g. https://www.pixiv.net
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts for transient failures
            retry_base_delay: Base delay between retries in seconds
            retry_max_delay: Maximum delay between retries in seconds
            transport: Optional transport override (tests)
        """
        self.user_id = user_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._session_id = session_id
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: UpstreamConfig, **kwargs: Any) -> UpstreamClient:
        return cls(
            config.user_id,
            config.session_id.get_secret_value(),
            config.base_url,
            config.timeout_sec,
            max_retries=config.max_retries,
            **kwargs,
        )

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "User-Agent": USER_AGENT,
                "Cookie": f"PHPSESSID={self._session_id}",
                "Referer": f"{self.base_url}/",
                "Accept": "application/json",
            },
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise MirrorError("Upstream client not initialized. Use async context manager.")
        return self._client

    async def _get_body(
        self,
        path: str,
        *,
        operation_name: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        async def _fetch() -> Any:
            response = await self.client.get(path, params=params)
            response.raise_for_status()
            return response.json()

        data = await retry_with_backoff(
            _fetch,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            operation_name=operation_name,
        )
        try:
            envelope = UpstreamEnvelope.model_validate(data)
        except ValidationError as exc:
            raise TransientSourceError(
                f"{operation_name} returned an unexpected response",
                {"operation": operation_name},
            ) from exc
        if envelope.error:
            raise TransientSourceError(
                f"{operation_name} rejected: {envelope.message or 'unknown error'}",
                {"operation": operation_name},
            )
        return envelope.body

    async def fetch_page(self, page: int) -> SourcePage:
        """Fetch page ``page`` (1-based) of the public bookmarks, newest first.

        Works that fail validation are dropped from the page.

        Raises:
            TransientSourceError: If the page cannot be fetched
        """
        if page < 1:
            msg = f"page must be >= 1, got {page}"
            raise ValueError(msg)

        body = await self._get_body(
            f"/ajax/user/{self.user_id}/illusts/bookmarks",
            params={
                "tag": "",
                "offset": (page - 1) * self.page_size,
                "limit": self.page_size,
                "rest": "show",
            },
            operation_name=f"fetch_page({page})",
        )
        try:
            parsed = BookmarkPageBody.model_validate(body or {})
        except ValidationError as exc:
            raise TransientSourceError(
                f"bookmark page {page} has an unexpected shape", {"page": page}
            ) from exc

        items: list[BookmarkItem] = []
        skipped = 0
        for raw in parsed.works:
            try:
                UpstreamWork.model_validate(raw)
            except ValidationError:
                skipped += 1
                continue
            items.append(BookmarkItem.from_upstream(raw))

        if skipped:
            logger.debug("upstream_works_skipped", extra={"page": page, "skipped": skipped})
        return SourcePage(items=items, total=parsed.total)

    async def fetch_tag_vocabulary(self) -> list[TagVocabularyEntry]:
        """Fetch the user's public bookmark tags with their upstream counts."""
        body = await self._get_body(
            f"/ajax/user/{self.user_id}/illusts/bookmark/tags",
            operation_name="fetch_tag_vocabulary",
        )
        try:
            parsed = BookmarkTagsBody.model_validate(body or {})
        except ValidationError as exc:
            raise TransientSourceError("tag vocabulary has an unexpected shape") from exc
        return [TagVocabularyEntry(tag=entry.tag, count=entry.cnt) for entry in parsed.public]

    async def search_tag(self, tag: str) -> TagSearchBody:
        """Look up related tags and translations for ``tag``."""
        body = await self._get_body(
            f"/ajax/search/tags/{quote(tag, safe='')}",
            operation_name="search_tag",
        )
        try:
            return TagSearchBody.model_validate(body or {})
        except ValidationError as exc:
            raise TransientSourceError(
                f"tag search for {tag!r} has an unexpected shape", {"tag": tag}
            ) from exc

    async def work_exists(self, work_id: str) -> bool:
        """Probe the public work page; ``False`` only on HTTP 404.

        Raises:
            TransientSourceError: If the probe fails for any other reason
        """

        async def _probe() -> bool:
            response = await self.client.get(f"/artworks/{quote(str(work_id), safe='')}")
            if response.status_code == 404:
                return False
            response.raise_for_status()
            return True

        return await retry_with_backoff(
            _probe,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            operation_name=f"work_exists({work_id})",
        )

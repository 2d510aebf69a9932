"""
Limit/offset pagination.

The engine walks a listing endpoint through a `fetch_page(limit, offset)`
callable, either materializing every item or producing pages/items lazily.
Streams fetch on demand (never ahead of the consumer) and can be cancelled
between fetches; a page that arrives after cancellation is discarded.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Deque,
    Generic,
    List,
    Mapping,
    Optional,
    TypeVar,
)

from .errors import UnexpectedResponseError

lib_logger = logging.getLogger("spotify_library")

T = TypeVar("T")

MIN_PAGE_LIMIT = 1
MAX_PAGE_LIMIT = 50


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T]
    limit: int
    offset: int
    total: int
    next: Optional[str] = None
    previous: Optional[str] = None
    href: Optional[str] = None

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        item_decoder: Optional[Callable[[Any], T]] = None,
    ) -> "Page[T]":
        """
        Build a page from the standard paging object.

        Raises:
            UnexpectedResponseError: If a required paging field is missing
        """
        try:
            raw_items = data["items"]
            items = [item_decoder(i) if item_decoder else i for i in raw_items]
            return cls(
                items=items,
                limit=int(data["limit"]),
                offset=int(data.get("offset") or 0),
                total=int(data["total"]),
                next=data.get("next"),
                previous=data.get("previous"),
                href=data.get("href"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UnexpectedResponseError(f"malformed paging object: {e}") from e

    @property
    def has_more(self) -> bool:
        return self.next is not None


PageFetcher = Callable[[int, int], Awaitable[Page[T]]]


def clamp_limit(
    limit: int, lower: int = MIN_PAGE_LIMIT, upper: int = MAX_PAGE_LIMIT
) -> int:
    return max(lower, min(upper, limit))


class PageStream(Generic[T]):
    """Lazily produced pages. Iterate with `async for`; stop early with `cancel()`."""

    def __init__(
        self,
        fetch_page: PageFetcher,
        limit: int = MAX_PAGE_LIMIT,
        max_pages: Optional[int] = None,
        upper_bound: int = MAX_PAGE_LIMIT,
    ):
        self._fetch_page = fetch_page
        self._limit = limit
        self._upper_bound = upper_bound
        self.max_pages = max_pages
        self._offset = 0
        self._accumulated = 0
        self.pages_fetched = 0
        self._done = False
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __aiter__(self) -> "PageStream[T]":
        return self

    async def __anext__(self) -> Page[T]:
        if self._done or self._cancelled:
            raise StopAsyncIteration
        if self.max_pages is not None and self.pages_fetched >= self.max_pages:
            self._done = True
            raise StopAsyncIteration

        limit = clamp_limit(self._limit, upper=self._upper_bound)
        page = await self._fetch_page(limit, self._offset)
        if self._cancelled:
            lib_logger.debug(f"Discarding page at offset {self._offset} fetched after cancel")
            self._done = True
            raise StopAsyncIteration

        self.pages_fetched += 1
        self._accumulated += len(page.items)
        if (
            not page.has_more
            or not page.items
            or self._accumulated >= page.total
        ):
            self._done = True
        else:
            self._offset += page.limit or limit
        return page


class ItemStream(Generic[T]):
    """Lazily produced items, fetching the next page only when the current one is exhausted."""

    def __init__(self, pages: PageStream[T], max_items: Optional[int] = None):
        self._pages = pages
        self.max_items = max_items
        self._buffer: Deque[T] = deque()
        self.items_yielded = 0

    def cancel(self) -> None:
        self._pages.cancel()
        self._buffer.clear()

    @property
    def cancelled(self) -> bool:
        return self._pages.cancelled

    @property
    def pages_fetched(self) -> int:
        return self._pages.pages_fetched

    def __aiter__(self) -> "ItemStream[T]":
        return self

    async def __anext__(self) -> T:
        if self.max_items is not None and self.items_yielded >= self.max_items:
            raise StopAsyncIteration
        while not self._buffer:
            if self._pages.cancelled:
                raise StopAsyncIteration
            page = await self._pages.__anext__()
            self._buffer.extend(page.items)
        self.items_yielded += 1
        return self._buffer.popleft()


@dataclass
class PaginationEngine:
    """Entry points for materialized and streaming traversal."""

    upper_bound: int = MAX_PAGE_LIMIT
    default_limit: int = field(default=MAX_PAGE_LIMIT)

    async def collect_all(
        self,
        fetch_page: PageFetcher,
        limit: Optional[int] = None,
        max_items: Optional[int] = None,
    ) -> List[T]:
        """
        Walk every page and return all items in order.

        Args:
            fetch_page: Fetches one page for (limit, offset)
            limit: Page size, clamped to the endpoint bound
            max_items: Stop once this many items are collected

        Returns:
            Every item of the collection (or the first max_items)
        """
        stream = ItemStream(
            PageStream(fetch_page, limit or self.default_limit, upper_bound=self.upper_bound),
            max_items=max_items,
        )
        results: List[T] = []
        async for item in stream:
            results.append(item)
        lib_logger.debug(
            f"Collected {len(results)} item(s) across {stream.pages_fetched} page(s)"
        )
        return results

    def stream_pages(
        self,
        fetch_page: PageFetcher,
        limit: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> PageStream[T]:
        return PageStream(
            fetch_page,
            limit or self.default_limit,
            max_pages=max_pages,
            upper_bound=self.upper_bound,
        )

    def stream_items(
        self,
        fetch_page: PageFetcher,
        limit: Optional[int] = None,
        max_items: Optional[int] = None,
    ) -> ItemStream[T]:
        return ItemStream(
            PageStream(fetch_page, limit or self.default_limit, upper_bound=self.upper_bound),
            max_items=max_items,
        )

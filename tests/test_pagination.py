"""
Tests for limit/offset pagination: materialized and streaming traversal.
"""

import asyncio

import pytest

from spotify_library.errors import UnexpectedResponseError
from spotify_library.pagination import (
    ItemStream,
    Page,
    PageStream,
    PaginationEngine,
    clamp_limit,
)


class FakeCollection:
    """Serves a fixed list of items as Spotify-style paging objects."""

    def __init__(self, items, delay=0.0):
        self.items = list(items)
        self.delay = delay
        self.calls = []

    async def fetch(self, limit, offset):
        self.calls.append((limit, offset))
        if self.delay:
            await asyncio.sleep(self.delay)
        chunk = self.items[offset:offset + limit]
        has_next = offset + limit < len(self.items)
        return Page(
            items=chunk,
            limit=limit,
            offset=offset,
            total=len(self.items),
            next=f"https://api.spotify.com/v1/items?offset={offset + limit}" if has_next else None,
        )


class TestPageParsing:
    def test_from_dict_with_decoder(self):
        page = Page.from_dict(
            {
                "items": [{"id": "a"}, {"id": "b"}],
                "limit": 2,
                "offset": 0,
                "total": 5,
                "next": "https://api.spotify.com/v1/me/tracks?offset=2&limit=2",
                "previous": None,
                "href": "https://api.spotify.com/v1/me/tracks?offset=0&limit=2",
            },
            item_decoder=lambda item: item["id"],
        )

        assert page.items == ["a", "b"]
        assert page.total == 5
        assert page.has_more

    def test_last_page_has_no_more(self):
        page = Page.from_dict({"items": [], "limit": 20, "offset": 40, "total": 40, "next": None})
        assert not page.has_more

    @pytest.mark.parametrize(
        "data",
        [
            {"limit": 2, "total": 1},
            {"items": [], "total": 1},
            {"items": [], "limit": "many", "total": 1},
            {"items": None, "limit": 2, "total": 1},
        ],
    )
    def test_malformed_paging_object(self, data):
        with pytest.raises(UnexpectedResponseError):
            Page.from_dict(data)

    def test_malformed_paging_object_keeps_original_error_as_cause(self):
        with pytest.raises(UnexpectedResponseError) as excinfo:
            Page.from_dict({"limit": 2, "total": 1})
        assert isinstance(excinfo.value.__cause__, KeyError)


class TestClampLimit:
    @pytest.mark.parametrize(
        "requested,expected", [(0, 1), (-5, 1), (1, 1), (20, 20), (50, 50), (100, 50)]
    )
    def test_default_bounds(self, requested, expected):
        assert clamp_limit(requested) == expected

    def test_custom_upper_bound(self):
        assert clamp_limit(100, upper=20) == 20


class TestCollectAll:
    @pytest.mark.asyncio
    async def test_collects_every_item_in_order(self):
        collection = FakeCollection(["a", "b", "c", "d", "e"])

        items = await PaginationEngine().collect_all(collection.fetch, limit=2)

        assert items == ["a", "b", "c", "d", "e"]
        assert collection.calls == [(2, 0), (2, 2), (2, 4)]

    @pytest.mark.asyncio
    async def test_max_items_stops_fetching_early(self):
        collection = FakeCollection(["a", "b", "c", "d", "e"])

        items = await PaginationEngine().collect_all(collection.fetch, limit=2, max_items=3)

        assert items == ["a", "b", "c"]
        assert len(collection.calls) == 2

    @pytest.mark.asyncio
    async def test_limit_is_clamped_to_the_endpoint_bound(self):
        collection = FakeCollection(range(120))

        items = await PaginationEngine().collect_all(collection.fetch, limit=100)

        assert len(items) == 120
        assert [limit for limit, _ in collection.calls] == [50, 50, 50]

    @pytest.mark.asyncio
    async def test_empty_collection(self):
        collection = FakeCollection([])

        assert await PaginationEngine().collect_all(collection.fetch) == []
        assert len(collection.calls) == 1

    @pytest.mark.asyncio
    async def test_empty_page_stops_even_if_next_is_set(self):
        calls = []

        async def fetch(limit, offset):
            calls.append(offset)
            return Page(items=[], limit=limit, offset=offset, total=10, next="https://x/next")

        assert await PaginationEngine().collect_all(fetch) == []
        assert calls == [0]

    @pytest.mark.asyncio
    async def test_total_reached_stops_even_if_next_is_set(self):
        calls = []

        async def fetch(limit, offset):
            calls.append(offset)
            return Page(items=["x", "y"], limit=limit, offset=offset, total=2, next="https://x/next")

        assert await PaginationEngine().collect_all(fetch, limit=2) == ["x", "y"]
        assert calls == [0]

    @pytest.mark.asyncio
    async def test_fetch_error_propagates(self):
        async def fetch(limit, offset):
            raise UnexpectedResponseError("boom")

        with pytest.raises(UnexpectedResponseError):
            await PaginationEngine().collect_all(fetch)


class TestPageStream:
    @pytest.mark.asyncio
    async def test_pages_are_fetched_on_demand(self):
        collection = FakeCollection(["a", "b", "c", "d", "e"])
        stream = PaginationEngine().stream_pages(collection.fetch, limit=2)

        first = await stream.__anext__()

        assert first.items == ["a", "b"]
        assert len(collection.calls) == 1

    @pytest.mark.asyncio
    async def test_max_pages(self):
        collection = FakeCollection(range(10))
        stream = PaginationEngine().stream_pages(collection.fetch, limit=2, max_pages=2)

        pages = [page async for page in stream]

        assert len(pages) == 2
        assert stream.pages_fetched == 2
        assert len(collection.calls) == 2

    @pytest.mark.asyncio
    async def test_cancel_stops_further_fetches(self):
        collection = FakeCollection(["a", "b", "c", "d", "e", "f"])
        stream = PageStream(collection.fetch, limit=2)
        seen = []

        async for page in stream:
            seen.append(page.items)
            stream.cancel()

        assert seen == [["a", "b"]]
        assert len(collection.calls) == 1
        assert stream.cancelled

    @pytest.mark.asyncio
    async def test_page_arriving_after_cancel_is_discarded(self):
        collection = FakeCollection(["a", "b", "c", "d"], delay=0.05)
        stream = PageStream(collection.fetch, limit=2)

        async def next_page():
            try:
                return await stream.__anext__()
            except StopAsyncIteration:
                return None

        pending = asyncio.ensure_future(next_page())
        await asyncio.sleep(0.01)
        stream.cancel()

        assert await pending is None
        assert len(collection.calls) == 1
        assert stream.pages_fetched == 0


class TestItemStream:
    @pytest.mark.asyncio
    async def test_items_across_pages(self):
        collection = FakeCollection(["a", "b", "c", "d", "e"])
        stream = PaginationEngine().stream_items(collection.fetch, limit=2)

        items = [item async for item in stream]

        assert items == ["a", "b", "c", "d", "e"]
        assert stream.pages_fetched == 3

    @pytest.mark.asyncio
    async def test_next_page_is_fetched_only_when_needed(self):
        collection = FakeCollection(["a", "b", "c", "d"])
        stream = ItemStream(PageStream(collection.fetch, limit=2))

        assert await stream.__anext__() == "a"
        assert await stream.__anext__() == "b"
        assert len(collection.calls) == 1
        assert await stream.__anext__() == "c"
        assert len(collection.calls) == 2

    @pytest.mark.asyncio
    async def test_cancel_after_first_page(self):
        collection = FakeCollection(["a", "b", "c", "d", "e", "f"])
        stream = PaginationEngine().stream_items(collection.fetch, limit=2)
        seen = []

        async for item in stream:
            seen.append(item)
            if len(seen) == 1:
                stream.cancel()

        assert seen == ["a"]
        assert len(collection.calls) == 1

    @pytest.mark.asyncio
    async def test_max_items(self):
        collection = FakeCollection(range(7))
        stream = PaginationEngine().stream_items(collection.fetch, limit=3, max_items=4)

        assert [item async for item in stream] == [0, 1, 2, 3]
        assert stream.pages_fetched == 2

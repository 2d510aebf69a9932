"""
End-to-end tests for the public clients against a mocked Spotify API.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import respx

from spotify_library import AppSpotifyClient, UserSpotifyClient
from spotify_library.auth.config import TOKEN_ENDPOINT
from spotify_library.errors import (
    HTTPError,
    InvalidRequestError,
    OfflineError,
    StateMismatchError,
    UnexpectedResponseError,
)
from spotify_library.events import TokenRefreshSucceeded, TokenRefreshWillStart
from spotify_library.pagination import ItemStream
from spotify_library.request import RequestDescriptor
from spotify_library.store import MemoryCredentialStore
from tests.fixtures.fakes import RecordingSleep

API = "https://api.spotify.com/v1"
REDIRECT = "http://localhost:8888/callback"


def token_response(access="app-token", refresh=None):
    payload = {"access_token": access, "token_type": "Bearer", "expires_in": 3600}
    if refresh:
        payload["refresh_token"] = refresh
    return httpx.Response(200, json=payload)


def paged(request, items, container_key=None):
    params = dict(request.url.params)
    limit = int(params["limit"])
    offset = int(params["offset"])
    chunk = items[offset:offset + limit]
    has_next = offset + limit < len(items)
    body = {
        "href": str(request.url),
        "items": chunk,
        "limit": limit,
        "offset": offset,
        "total": len(items),
        "next": f"{API}/next?offset={offset + limit}" if has_next else None,
        "previous": None,
    }
    if container_key:
        body = {container_key: body}
    return httpx.Response(200, json=body)


def app_client(**kwargs):
    return AppSpotifyClient.client_credentials(
        "client-id", "client-secret", sleep=RecordingSleep(), **kwargs
    )


class TestAppClient:
    @pytest.mark.asyncio
    async def test_token_is_obtained_once_and_attached(self):
        async with app_client() as client:
            with respx.mock() as mock:
                token_route = mock.post(TOKEN_ENDPOINT).mock(return_value=token_response())
                album_route = mock.get(f"{API}/albums/a1").mock(
                    return_value=httpx.Response(200, json={"id": "a1", "name": "Album"})
                )

                first = await client.get_json("/albums/a1")
                second = await client.get_json("/albums/a1")

        assert first == second == {"id": "a1", "name": "Album"}
        assert token_route.call_count == 1
        assert album_route.call_count == 2
        assert album_route.calls.last.request.headers["authorization"] == "Bearer app-token"

    @pytest.mark.asyncio
    async def test_rejected_token_is_reissued(self):
        async with app_client() as client:
            with respx.mock() as mock:
                token_route = mock.post(TOKEN_ENDPOINT).mock(
                    side_effect=[token_response("first"), token_response("second")]
                )
                route = mock.get(f"{API}/artists/x").mock(
                    side_effect=[
                        httpx.Response(401, json={"error": {"status": 401}}),
                        httpx.Response(200, json={"id": "x"}),
                    ]
                )

                result = await client.get_json("/artists/x")

        assert result == {"id": "x"}
        assert token_route.call_count == 2
        assert route.calls[1].request.headers["authorization"] == "Bearer second"

    @pytest.mark.asyncio
    async def test_events_reach_subscribers(self):
        async with app_client() as client:
            subscription = client.subscribe()
            with respx.mock() as mock:
                mock.post(TOKEN_ENDPOINT).mock(return_value=token_response())
                mock.get(f"{API}/markets").mock(
                    return_value=httpx.Response(200, json={"markets": ["US"]})
                )
                await client.get_json("/markets")

        kinds = [type(e) for e in subscription.pending()]
        assert kinds[:2] == [TokenRefreshWillStart, TokenRefreshSucceeded]
        assert client.token_expires_in() > 3000

    @pytest.mark.asyncio
    async def test_http_error_surfaces(self):
        async with app_client() as client:
            with respx.mock() as mock:
                mock.post(TOKEN_ENDPOINT).mock(return_value=token_response())
                mock.get(f"{API}/albums/missing").mock(
                    return_value=httpx.Response(404, json={"error": {"status": 404}})
                )
                with pytest.raises(HTTPError) as excinfo:
                    await client.get_json("/albums/missing")

        assert excinfo.value.status_code == 404
        assert excinfo.value.attempts == 1

    @pytest.mark.asyncio
    async def test_offline(self):
        async with app_client() as client:
            client.set_offline(True)
            assert client.is_offline
            with respx.mock(assert_all_called=False) as mock:
                token_route = mock.post(TOKEN_ENDPOINT).mock(return_value=token_response())
                with pytest.raises(OfflineError):
                    await client.get_json("/markets")

        assert token_route.call_count == 0


class TestClientPagination:
    @pytest.mark.asyncio
    async def test_collect_all_pages(self):
        tracks = [{"id": f"t{n}"} for n in range(5)]
        async with app_client() as client:
            with respx.mock() as mock:
                mock.post(TOKEN_ENDPOINT).mock(return_value=token_response())
                route = mock.get(f"{API}/playlists/p1/tracks").mock(
                    side_effect=lambda request: paged(request, tracks)
                )

                ids = await client.collect_all_pages(
                    "/playlists/p1/tracks",
                    {"market": "US"},
                    item_decoder=lambda item: item["id"],
                    limit=2,
                )

        assert ids == ["t0", "t1", "t2", "t3", "t4"]
        assert route.call_count == 3
        first = parse_qs(urlparse(str(route.calls[0].request.url)).query)
        assert first == {"market": ["US"], "limit": ["2"], "offset": ["0"]}

    @pytest.mark.asyncio
    async def test_nested_paging_object_streams_items(self):
        artists = [{"name": f"artist {n}"} for n in range(4)]
        async with app_client() as client:
            with respx.mock() as mock:
                mock.post(TOKEN_ENDPOINT).mock(return_value=token_response())
                route = mock.get(f"{API}/search").mock(
                    side_effect=lambda request: paged(request, artists, "artists")
                )

                fetch = client.page_fetcher(
                    "/search", {"q": "band", "type": "artist"}, container_key="artists"
                )
                stream = await client.paginate(fetch, mode="items", limit=3)
                assert isinstance(stream, ItemStream)
                names = [item["name"] async for item in stream]

        assert names == ["artist 0", "artist 1", "artist 2", "artist 3"]
        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_missing_container_key(self):
        async with app_client() as client:
            with respx.mock() as mock:
                mock.post(TOKEN_ENDPOINT).mock(return_value=token_response())
                mock.get(f"{API}/search").mock(return_value=httpx.Response(200, json={}))

                with pytest.raises(UnexpectedResponseError):
                    await client.paginate(
                        client.page_fetcher("/search", {"q": "x"}, container_key="tracks")
                    )

    @pytest.mark.asyncio
    async def test_unknown_mode(self):
        async with app_client() as client:
            with pytest.raises(ValueError):
                await client.paginate(client.page_fetcher("/search"), mode="everything")

    @pytest.mark.asyncio
    async def test_stream_pages_stops_at_max_pages(self):
        items = list(range(10))
        async with app_client() as client:
            with respx.mock() as mock:
                mock.post(TOKEN_ENDPOINT).mock(return_value=token_response())
                route = mock.get(f"{API}/browse/new-releases").mock(
                    side_effect=lambda request: paged(request, items)
                )

                stream = client.stream_pages("/browse/new-releases", limit=4, max_pages=2)
                pages = [page async for page in stream]

        assert [page.items for page in pages] == [[0, 1, 2, 3], [4, 5, 6, 7]]
        assert route.call_count == 2


class TestBatching:
    @pytest.mark.asyncio
    async def test_perform_batched_reports_progress(self):
        ids = [f"id{n}" for n in range(7)]
        progress = []
        async with app_client() as client:
            with respx.mock() as mock:
                mock.post(TOKEN_ENDPOINT).mock(return_value=token_response())
                route = mock.get(f"{API}/tracks").mock(
                    side_effect=lambda request: httpx.Response(
                        200, json={"tracks": request.url.params["ids"].split(",")}
                    )
                )

                results = await client.perform_batched(
                    ids,
                    3,
                    lambda chunk: RequestDescriptor.get("/tracks", {"ids": chunk}),
                    on_progress=progress.append,
                )

        assert route.call_count == 3
        assert [r["tracks"] for r in results] == [ids[0:3], ids[3:6], ids[6:7]]
        assert [p.completed for p in progress] == [3, 6, 7]
        assert [p.current_batch_size for p in progress] == [3, 3, 1]
        assert progress[-1].is_finished

    @pytest.mark.asyncio
    async def test_batch_size_is_validated(self):
        async with app_client() as client:
            with pytest.raises(InvalidRequestError) as excinfo:
                await client.perform_batched(["a"], 0, lambda chunk: RequestDescriptor.get("/tracks"))

        assert excinfo.value.parameter == "batch_size"


class TestUserClient:
    @pytest.mark.asyncio
    async def test_pkce_authorization_flow(self):
        store = MemoryCredentialStore()
        client = UserSpotifyClient.pkce(
            "client-id", REDIRECT, ["user-read-private"], store=store, sleep=RecordingSleep()
        )
        async with client:
            url = client.authorization_url(state="state-1")
            assert "code_challenge=" in url

            with respx.mock() as mock:
                token_route = mock.post(TOKEN_ENDPOINT).mock(
                    return_value=token_response("user-token", refresh="user-refresh")
                )
                mock.get(f"{API}/me").mock(
                    return_value=httpx.Response(200, json={"id": "listener"})
                )

                credential = await client.handle_callback(f"{REDIRECT}?code=auth-code&state=state-1")
                profile = await client.current_user_profile()

        form = parse_qs(token_route.calls.last.request.content.decode())
        assert form["code"] == ["auth-code"]
        assert "code_verifier" in form
        assert credential.refresh_token == "user-refresh"
        assert await store.load() == credential
        assert profile == {"id": "listener"}

    @pytest.mark.asyncio
    async def test_callback_with_wrong_state_sends_nothing(self):
        client = UserSpotifyClient.pkce("client-id", REDIRECT, sleep=RecordingSleep())
        async with client:
            client.authorization_url(state="expected")
            with respx.mock(assert_all_called=False) as mock:
                token_route = mock.post(TOKEN_ENDPOINT).mock(return_value=token_response())
                with pytest.raises(StateMismatchError):
                    await client.handle_callback(f"{REDIRECT}?code=c&state=forged")

        assert token_route.call_count == 0

    @pytest.mark.asyncio
    async def test_manual_refresh_and_reset(self):
        store = MemoryCredentialStore()
        client = UserSpotifyClient.authorization_code(
            "client-id", "secret", REDIRECT, store=store, sleep=RecordingSleep()
        )
        async with client:
            client.authorization_url(state="s1")
            with respx.mock() as mock:
                mock.post(TOKEN_ENDPOINT).mock(
                    side_effect=[
                        token_response("first", refresh="r1"),
                        token_response("second"),
                    ]
                )
                await client.handle_callback(f"{REDIRECT}?code=c&state=s1")
                refreshed = await client.refresh_access_token()

            assert refreshed.access_token == "second"
            assert refreshed.refresh_token == "r1"

            await client.reset_credentials()

        assert await store.load() is None
        assert client.token_expires_in() is None


class TestModuleDocumentation:
    def test_client_module_describes_both_concrete_clients(self):
        import spotify_library.client as client_module

        doc = client_module.__doc__
        assert doc
        assert AppSpotifyClient.__name__ in doc
        assert UserSpotifyClient.__name__ in doc

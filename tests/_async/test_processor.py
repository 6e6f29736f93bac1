from datetime import datetime, timezone
from typing import Optional

import pytest
from time_machine import travel

from lastmodified import (
    AsyncInMemoryStorage,
    AsyncPageCacheProxy,
    FreshnessPolicy,
    Headers,
    LastModifiedOptions,
    PageResource,
    RequestContext,
    Response,
    StorageError,
    StoredPage,
    generate_cache_key,
)
from lastmodified._core._packing import unpack

PAGE = b"<html>\n  <body>\n    <p>About</p>\n  </body>\n</html>\n"
MINIFIED_PAGE = b"<html><body><p>About</p></body></html>"

KEY = generate_cache_key("https://example.com", "/about")

RESOURCE = PageResource(edited_on="2024-01-10 12:00:00", id=42)


class PageRenderer:
    def __init__(self, status_code: int = 200, content_type: str = "text/html; charset=utf-8", body: bytes = PAGE):
        self.status_code = status_code
        self.content_type = content_type
        self.body = body
        self.calls = 0

    async def __call__(self) -> Response:
        self.calls += 1
        return Response(
            status_code=self.status_code,
            headers=Headers({"Content-Type": self.content_type}),
            body=self.body,
        )


class BrokenStorage(AsyncInMemoryStorage):
    def __init__(self, broken_get: bool = False, broken_set: bool = False) -> None:
        super().__init__()
        self.broken_get = broken_get
        self.broken_set = broken_set

    async def get(self, key: str) -> Optional[bytes]:
        if self.broken_get:
            raise StorageError("read failed")
        return await super().get(key)

    async def set(self, key: str, value: bytes, ttl=0) -> None:
        if self.broken_set:
            raise StorageError("write failed")
        await super().set(key, value, ttl)


def create_context(method: str = "GET", headers: Optional[dict] = None) -> RequestContext:
    return RequestContext(method=method, url="https://example.com/about?utm=1", headers=Headers(headers or {}))


@pytest.fixture
def options() -> LastModifiedOptions:
    return LastModifiedOptions(policy=FreshnessPolicy(visibility="public"))


@pytest.mark.anyio
@travel(datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc), tick=False)
async def test_miss_then_hit(options, caplog):
    storage = AsyncInMemoryStorage()
    proxy = AsyncPageCacheProxy(options, storage=storage)
    render = PageRenderer()

    with caplog.at_level("DEBUG", logger="lastmodified.proxy"):
        first = await proxy.handle_request(create_context(), RESOURCE, render)
        second = await proxy.handle_request(create_context(), RESOURCE, render)

    assert caplog.messages == [
        "Handling state: Idle",
        "Handling state: CacheLookup",
        f"Page cache miss: key={KEY}",
        "Handling state: CacheMiss",
        "Handling state: StoreAndServe",
        "Handling state: Idle",
        "Handling state: CacheLookup",
        f"Page cache hit: key={KEY}",
        "Handling state: FromCache",
    ]
    assert render.calls == 1
    assert unpack(await storage.get(KEY)) == StoredPage(body=MINIFIED_PAGE, content_type="text/html; charset=utf-8")

    assert first.status_code == 200
    assert first.body == MINIFIED_PAGE
    assert first.headers == Headers(
        {
            "Content-Type": "text/html; charset=utf-8",
            "Last-Modified": "Wed, 10 Jan 2024 12:00:00 GMT",
            "Cache-Control": "public, max-age=3600",
            "Expires": "Wed, 10 Jan 2024 13:00:00 GMT",
            "Vary": "Accept",
        }
    )
    assert first.metadata == {
        "lastmodified_not_modified": False,
        "lastmodified_from_cache": False,
        "lastmodified_minified": True,
        "lastmodified_stored": True,
    }

    assert second.body == MINIFIED_PAGE
    assert second.headers == Headers({**first.headers, "Content-Length": str(len(MINIFIED_PAGE))})
    assert second.metadata == {
        "lastmodified_not_modified": False,
        "lastmodified_from_cache": True,
        "lastmodified_minified": False,
        "lastmodified_stored": False,
    }


@pytest.mark.anyio
async def test_not_modified_skips_rendering(options, caplog):
    proxy = AsyncPageCacheProxy(options)
    render = PageRenderer()

    with caplog.at_level("DEBUG", logger="lastmodified.proxy"):
        response = await proxy.handle_request(
            create_context(headers={"If-Modified-Since": "Wed, 10 Jan 2024 12:00:00 GMT"}),
            RESOURCE,
            render,
        )

    assert caplog.messages == ["Handling state: Idle", "Handling state: NotModified"]
    assert render.calls == 0
    assert response.status_code == 304
    assert response.body == b""
    assert response.headers["Last-Modified"] == "Wed, 10 Jan 2024 12:00:00 GMT"


@pytest.mark.anyio
async def test_bypass_renders_untouched(options, caplog):
    proxy = AsyncPageCacheProxy(options)
    render = PageRenderer()

    with caplog.at_level("DEBUG", logger="lastmodified.proxy"):
        response = await proxy.handle_request(create_context(method="POST"), RESOURCE, render)

    assert caplog.messages == [
        "Handling state: Idle",
        "Handling state: Bypass",
        "Bypassing page pipeline: method POST is not supported",
    ]
    assert render.calls == 1
    assert response.body == PAGE
    assert "last-modified" not in response.headers


@pytest.mark.anyio
async def test_missing_timestamps_bypass(options):
    proxy = AsyncPageCacheProxy(options)
    render = PageRenderer()

    response = await proxy.handle_request(create_context(), PageResource(), render)

    assert render.calls == 1
    assert response.body == PAGE


@pytest.mark.anyio
async def test_head_request_is_not_stored(options):
    storage = AsyncInMemoryStorage()
    proxy = AsyncPageCacheProxy(options, storage=storage)

    response = await proxy.handle_request(create_context(method="HEAD"), RESOURCE, PageRenderer())

    assert response.body == PAGE
    assert response.headers["Last-Modified"] == "Wed, 10 Jan 2024 12:00:00 GMT"
    assert await storage.get(KEY) is None


@pytest.mark.anyio
async def test_non_html_page_is_not_stored(options):
    storage = AsyncInMemoryStorage()
    proxy = AsyncPageCacheProxy(options, storage=storage)
    render = PageRenderer(content_type="application/json", body=b'{\n  "a": 1\n}')

    response = await proxy.handle_request(create_context(), RESOURCE, render)

    assert response.body == b'{\n  "a": 1\n}'
    assert response.metadata["lastmodified_stored"] is False
    assert await storage.get(KEY) is None


@pytest.mark.anyio
async def test_error_page_is_not_stored(options):
    storage = AsyncInMemoryStorage()
    proxy = AsyncPageCacheProxy(options, storage=storage)

    response = await proxy.handle_request(create_context(), RESOURCE, PageRenderer(status_code=500))

    assert response.status_code == 500
    assert response.body == PAGE
    assert "last-modified" not in response.headers
    assert await storage.get(KEY) is None


@pytest.mark.anyio
async def test_webp_variant_is_stored_separately(options):
    storage = AsyncInMemoryStorage()
    proxy = AsyncPageCacheProxy(options, storage=storage)

    await proxy.handle_request(create_context(headers={"Accept": "image/webp,*/*"}), RESOURCE, PageRenderer())

    assert await storage.get(KEY) is None
    stored = unpack(await storage.get(generate_cache_key("https://example.com", "/about", webp=True)))
    assert stored is not None
    assert stored.body == MINIFIED_PAGE


@pytest.mark.anyio
async def test_hit_keeps_the_rendered_charset(options):
    proxy = AsyncPageCacheProxy(options, storage=AsyncInMemoryStorage())
    render = PageRenderer(content_type="text/html; charset=windows-1251", body="<p>\n  Привет\n</p>".encode("cp1251"))

    first = await proxy.handle_request(create_context(), RESOURCE, render)
    second = await proxy.handle_request(create_context(), RESOURCE, render)

    assert render.calls == 1
    assert second.metadata["lastmodified_from_cache"] is True
    assert second.body == first.body == "<p>Привет</p>".encode("cp1251")
    assert second.headers["Content-Type"] == "text/html; charset=windows-1251"
    assert second.headers["Content-Length"] == str(len(second.body))


@pytest.mark.anyio
async def test_unreadable_cache_entry_is_a_miss(options, caplog):
    storage = AsyncInMemoryStorage()
    await storage.set(KEY, MINIFIED_PAGE)
    proxy = AsyncPageCacheProxy(options, storage=storage)
    render = PageRenderer()

    with caplog.at_level("WARNING", logger="lastmodified.proxy"):
        response = await proxy.handle_request(create_context(), RESOURCE, render)

    assert caplog.messages == [f"Ignoring unreadable page cache entry: key={KEY}"]
    assert render.calls == 1
    assert response.body == MINIFIED_PAGE
    assert unpack(await storage.get(KEY)) == StoredPage(body=MINIFIED_PAGE, content_type="text/html; charset=utf-8")


@pytest.mark.anyio
async def test_unrepresentable_expiry_renders_untouched(caplog):
    proxy = AsyncPageCacheProxy({"lastmodified.response": "public", "lastmodified.expires": "99999999999999"})
    render = PageRenderer()

    with caplog.at_level("DEBUG", logger="lastmodified.proxy"):
        response = await proxy.handle_request(create_context(), RESOURCE, render)

    assert caplog.messages == [
        "Handling state: Idle",
        "Handling state: Bypass",
        "Bypassing page pipeline: freshness headers could not be formatted",
    ]
    assert render.calls == 1
    assert response.body == PAGE
    assert "expires" not in response.headers


@pytest.mark.anyio
async def test_unreadable_cache_renders_the_page(options, caplog):
    proxy = AsyncPageCacheProxy(options, storage=BrokenStorage(broken_get=True))
    render = PageRenderer()

    with caplog.at_level("ERROR", logger="lastmodified.proxy"):
        response = await proxy.handle_request(create_context(), RESOURCE, render)

    assert caplog.messages == [f"Could not read the page cache: key={KEY}"]
    assert render.calls == 1
    assert response.status_code == 200
    assert response.body == PAGE
    assert response.metadata["lastmodified_stored"] is False


@pytest.mark.anyio
async def test_unwritable_cache_serves_the_rendered_page(options, caplog):
    proxy = AsyncPageCacheProxy(options, storage=BrokenStorage(broken_set=True))

    with caplog.at_level("ERROR", logger="lastmodified.proxy"):
        response = await proxy.handle_request(create_context(), RESOURCE, PageRenderer())

    assert caplog.messages == [f"Could not write the page cache: key={KEY}"]
    assert response.body == PAGE
    assert response.metadata["lastmodified_minified"] is False
    assert response.metadata["lastmodified_stored"] is False


@pytest.mark.anyio
async def test_options_from_mapping():
    proxy = AsyncPageCacheProxy({"lastmodified.response": "private", "lastmodified.maxage": "60"})

    response = await proxy.handle_request(create_context(), RESOURCE, PageRenderer())

    assert proxy.configuration_error is None
    assert response.headers["Cache-Control"] == "private, max-age=60"


@pytest.mark.anyio
async def test_invalid_configuration_disables_the_pipeline(caplog):
    with caplog.at_level("ERROR", logger="lastmodified.proxy"):
        proxy = AsyncPageCacheProxy({"lastmodified.response": "nope"})
        response = await proxy.handle_request(create_context(), RESOURCE, PageRenderer())

    assert proxy.options is None
    assert caplog.messages == [
        "LastModified: Wrong response directive value 'nope', expected one of private, public. Check configuration.",
        "LastModified: Wrong response directive value 'nope', expected one of private, public. Check configuration.",
    ]
    assert response.body == PAGE
    assert "last-modified" not in response.headers
    await proxy.aclose()

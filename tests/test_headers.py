import pytest

from lastmodified import Headers
from lastmodified._core._headers import MediaRange, accepts_media_type, parse_accept, parse_quality


def test_headers_are_case_insensitive():
    headers = Headers({"Content-Type": "text/html"})

    assert headers["content-type"] == "text/html"
    assert headers["CONTENT-TYPE"] == "text/html"
    assert "Content-type" in headers


def test_headers_setitem_appends():
    headers = Headers()
    headers["Set-Cookie"] = "a=1"
    headers["set-cookie"] = "b=2"

    assert headers["Set-Cookie"] == "a=1, b=2"
    assert headers.get_list("set-cookie") == ["a=1", "b=2"]
    assert headers.multi_items() == [("set-cookie", "a=1"), ("set-cookie", "b=2")]


def test_headers_replace():
    headers = Headers({"Cache-Control": ["no-cache", "no-store"]})
    headers.replace("cache-control", "public, max-age=3600")

    assert headers.get_list("Cache-Control") == ["public, max-age=3600"]


def test_headers_raw_round_trip():
    raw = [(b"Content-Type", b"text/html"), (b"Vary", b"Accept"), (b"Vary", b"Cookie")]
    headers = Headers.from_raw(raw)

    assert headers.raw() == [(b"content-type", b"text/html"), (b"vary", b"Accept"), (b"vary", b"Cookie")]


def test_headers_equality():
    assert Headers({"A": "1"}) == Headers({"a": "1"})
    assert Headers({"A": "1"}) != {"a": "1"}


def test_headers_delete():
    headers = Headers({"A": "1", "B": "2"})
    del headers["a"]

    assert list(headers) == ["b"]
    assert len(headers) == 1


def test_parse_accept():
    ranges = parse_accept("text/html,application/xhtml+xml,image/webp;q=0.9,*/*;q=0.8")

    assert ranges == [
        MediaRange("text", "html", 1.0),
        MediaRange("application", "xhtml+xml", 1.0),
        MediaRange("image", "webp", 0.9),
        MediaRange("*", "*", 0.8),
    ]


def test_parse_accept_skips_malformed_elements():
    assert parse_accept("garbage, /webp, image/, image/webp/x, , image/png") == [MediaRange("image", "png")]


def test_parse_accept_is_case_insensitive():
    assert parse_accept("Image/WebP; Q=0.5") == [MediaRange("image", "webp", 0.5)]


@pytest.mark.parametrize(
    "value, expected",
    [
        ("0.5", 0.5),
        ("0", 0.0),
        ("1", 1.0),
        ("2", 1.0),
        ("-1", 0.0),
        ("abc", 1.0),
        ("", 1.0),
        ("nan", 1.0),
    ],
)
def test_parse_quality(value, expected):
    assert parse_quality(value) == expected


@pytest.mark.parametrize(
    "accept",
    [
        "image/webp",
        "image/avif,image/webp,*/*",
        "text/html, IMAGE/WEBP;q=0.1",
    ],
)
def test_accepts_media_type(accept):
    assert accepts_media_type(accept, "image/webp")


@pytest.mark.parametrize(
    "accept",
    [
        None,
        "",
        "image/*",
        "*/*",
        "image/webp;q=0",
        "image/webpx",
        "text/html",
    ],
)
def test_does_not_accept_media_type(accept):
    assert not accepts_media_type(accept, "image/webp")

import hashlib

from lastmodified import generate_cache_key, prefers_webp


def test_generate_cache_key():
    key = generate_cache_key("https://example.com", "/about")

    assert key == hashlib.md5(b"https://example.com/about").hexdigest()
    assert len(key) == 32


def test_generate_cache_key_webp_variant():
    key = generate_cache_key("https://example.com", "/about", webp=True)

    assert key == hashlib.md5(b"https://example.com/about#webp").hexdigest()


def test_webp_and_plain_variants_differ():
    assert generate_cache_key("https://example.com", "/about", webp=True) != generate_cache_key(
        "https://example.com", "/about"
    )


def test_webp_variant_does_not_collide_with_other_paths():
    assert generate_cache_key("", "/a", webp=True) != generate_cache_key("", "/awebp")


def test_generate_cache_key_is_deterministic():
    assert generate_cache_key("https://example.com", "/") == generate_cache_key("https://example.com", "/")


def test_generate_cache_key_with_non_ascii_path():
    key = generate_cache_key("https://example.com", "/café")

    assert key == hashlib.md5("https://example.com/café".encode("utf-8")).hexdigest()


def test_prefers_webp():
    assert prefers_webp("text/html,image/webp,*/*;q=0.8")
    assert not prefers_webp("text/html,*/*;q=0.8")
    assert not prefers_webp(None)

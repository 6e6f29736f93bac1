from __future__ import annotations

import hashlib
from typing import Optional

from lastmodified._core._headers import accepts_media_type

WEBP_MEDIA_TYPE = "image/webp"

# "#" never occurs in the path component of a URL
WEBP_VARIANT_SUFFIX = "#webp"


def prefers_webp(accept: Optional[str]) -> bool:
    """Whether the client's Accept header declares support for WebP images."""
    return accepts_media_type(accept, WEBP_MEDIA_TYPE)


def generate_cache_key(origin: str, path: str, webp: bool = False) -> str:
    """
    Build the page cache key for a request.

    The parts are concatenated before hashing and the variant suffix starts
    with a character that cannot appear in a URL path, so distinct
    `(path, variant)` pairs always hash distinct input.

    Args:
        origin: The site's canonical origin, e.g. ``https://example.com``.
        path: The percent-encoded request path without query string.
        webp: Whether the client negotiated the WebP image variant.

    Returns:
        A 32-character hex MD5 digest.
    """
    suffix = WEBP_VARIANT_SUFFIX if webp else ""
    data = f"{origin}{path}{suffix}".encode("utf-8", "surrogateescape")
    return hashlib.md5(data, usedforsecurity=False).hexdigest()

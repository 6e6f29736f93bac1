from __future__ import annotations

from typing import Any, Optional, cast

import msgpack

from lastmodified._core.models import Response, StoredPage


def pack(response: Response) -> bytes:
    return cast(
        bytes,
        msgpack.packb(
            {
                "content_type": response.headers.get("content-type"),
                "body": response.body,
            }
        ),
    )


def unpack(value: Optional[bytes]) -> Optional[StoredPage]:
    """
    Read a page cache entry written by `pack`.

    Returns None for an empty value and for bytes that are not a page entry.
    """
    if not value:
        return None
    try:
        data: Any = msgpack.unpackb(value)
    except (ValueError, TypeError, msgpack.UnpackException):
        return None
    if not isinstance(data, dict) or not isinstance(data.get("body"), bytes):
        return None
    content_type = data.get("content_type")
    return StoredPage(
        body=data["body"],
        content_type=content_type if isinstance(content_type, str) else None,
    )

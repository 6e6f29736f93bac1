from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from http import HTTPStatus
from typing import Any, FrozenSet, Mapping, Optional, TypedDict, Union
from urllib.parse import SplitResult, urlsplit

from lastmodified._core._headers import Headers

StoredDate = Union[str, int, float, datetime, None]

DEFAULT_PROTOCOL = "HTTP/1.1"


@dataclass(frozen=True)
class RequestContext:
    """
    Immutable snapshot of everything the core reads about one request.

    Integrations build it from their own request objects (ASGI scope, WSGI
    environ, framework request), so the core never touches ambient state.
    """

    method: str
    url: str
    headers: Headers = field(default_factory=Headers)
    server_protocol: Optional[str] = None
    session_keys: FrozenSet[str] = frozenset()
    username: Optional[str] = None

    def _split(self) -> Optional[SplitResult]:
        try:
            return urlsplit(self.url)
        except ValueError:
            return None

    @property
    def path(self) -> str:
        """The path component of the url, query string and fragment excluded."""
        parts = self._split()
        if parts is None:
            path = self.url.split("#", 1)[0].split("?", 1)[0]
            return path if path.startswith("/") else "/"
        return parts.path or "/"

    @property
    def origin(self) -> str:
        parts = self._split()
        return f"{parts.scheme}://{parts.netloc}" if parts is not None and parts.netloc else ""

    @property
    def protocol(self) -> str:
        return self.server_protocol or DEFAULT_PROTOCOL


@dataclass
class PageResource:
    """Timestamps of the page being served, in whatever shape the content store keeps them."""

    edited_on: StoredDate = None
    created_on: StoredDate = None
    id: Optional[int] = None
    context_key: Optional[str] = None


class ResponseMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "lastmodified_" to avoid collisions with user data
    lastmodified_not_modified: bool
    """The conditional check short-circuited the response with 304."""

    lastmodified_from_cache: bool
    """The body was served verbatim from the page cache."""

    lastmodified_minified: bool
    """The body was minified while handling this request."""

    lastmodified_stored: bool
    """The minified body was written to the page cache."""


@dataclass
class Response:
    status_code: int
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    http_version: str = DEFAULT_PROTOCOL
    metadata: Union[ResponseMetadata, Mapping[str, Any]] = field(default_factory=dict)

    @property
    def reason_phrase(self) -> str:
        try:
            return HTTPStatus(self.status_code).phrase
        except ValueError:
            return ""

    @property
    def status_line(self) -> str:
        """The status line echoing the request's protocol, e.g. `HTTP/1.1 304 Not Modified`."""
        return f"{self.http_version} {self.status_code} {self.reason_phrase}".rstrip()


@dataclass
class StoredPage:
    """A page cache entry: the minified body and the media type it was rendered with."""

    body: bytes
    content_type: Optional[str] = None

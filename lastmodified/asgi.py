from __future__ import annotations

import logging
import typing as t
from urllib.parse import quote

from lastmodified._async._storages import AsyncBaseStorage
from lastmodified._async_processor import AsyncPageCacheProxy
from lastmodified._config import LastModifiedOptions
from lastmodified._core._headers import Headers
from lastmodified._core.models import PageResource, RequestContext, Response

# Configure logger for this module
logger = logging.getLogger(__name__)


class _ASGIScope(t.TypedDict, total=False):
    """ASGI HTTP scope type."""

    type: str
    asgi: dict[str, str]
    http_version: str
    method: str
    scheme: str
    path: str
    raw_path: bytes
    query_string: bytes
    root_path: str
    headers: list[tuple[bytes, bytes]]
    server: tuple[str, int | None] | None
    client: tuple[str, int] | None
    state: dict[str, t.Any]
    extensions: dict[str, t.Any]
    session: dict[str, t.Any]
    user: t.Any


_Scope = _ASGIScope
_Receive = t.Callable[[], t.Awaitable[dict[str, t.Any]]]
_Send = t.Callable[[dict[str, t.Any]], t.Awaitable[None]]
_ASGIApp = t.Callable[[_Scope, _Receive, _Send], t.Awaitable[None]]
_ResourceLoader = t.Callable[[_Scope], t.Awaitable[t.Optional[PageResource]]]


def _username_from_scope(scope: _Scope) -> t.Optional[str]:
    user = scope.get("user")
    if user is None or not getattr(user, "is_authenticated", True):
        return None
    if isinstance(user, str):
        return user
    for attribute in ("username", "display_name"):
        value = getattr(user, attribute, None)
        if value:
            return str(value)
    return None


class ASGILastModifiedMiddleware:
    """
    ASGI middleware that answers conditional requests and serves minified, cached pages.

    For every GET/HEAD request it loads the page's timestamps through
    `resource_loader`, then either answers `304 Not Modified` or serves the
    page with `Last-Modified`, `Cache-Control` and `Expires` headers. HTML
    bodies are minified and kept in the page cache, so the wrapped application
    is only called when the page is not cached yet.

    Session keys are read from `scope["session"]` (as set by Starlette's
    SessionMiddleware) and the user from `scope["user"]`.

    Args:
        app: The ASGI application to wrap.
        options: Parsed options, or a raw configuration mapping.
        resource_loader: Async callable returning the PageResource of the requested page,
            or None when the request does not map to a page.
        storage: The page cache backend. Defaults to AsyncInMemoryStorage.

    Example:
        ```python
        from lastmodified import PageResource
        from lastmodified.asgi import ASGILastModifiedMiddleware

        async def load_page(scope):
            page = await pages.get_by_path(scope["path"])
            return PageResource(edited_on=page.editedon, created_on=page.createdon) if page else None

        app = ASGILastModifiedMiddleware(
            app=my_asgi_app,
            options={"lastmodified.response": "public", "lastmodified.maxage": 600},
            resource_loader=load_page,
        )
        ```
    """

    def __init__(
        self,
        app: _ASGIApp,
        options: t.Union[LastModifiedOptions, t.Mapping[str, t.Any]],
        resource_loader: _ResourceLoader,
        storage: AsyncBaseStorage | None = None,
    ) -> None:
        self.app = app
        self.resource_loader = resource_loader
        self._proxy = AsyncPageCacheProxy(options=options, storage=storage)
        self.storage = self._proxy.storage

        logger.info(
            "Initialized ASGILastModifiedMiddleware with storage=%s, enabled=%s",
            type(self.storage).__name__,
            self._proxy.options is not None,
        )

    async def __call__(self, scope: _Scope, receive: _Receive, send: _Send) -> None:
        """
        Handle an ASGI request.

        Args:
            scope: The ASGI scope dictionary.
            receive: The ASGI receive callable.
            send: The ASGI send callable.
        """
        # Only handle HTTP requests
        if scope["type"] != "http":
            logger.debug("Skipping non-HTTP request: type=%s", scope["type"])
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET")
        path = scope.get("path", "/")

        options = self._proxy.options
        if options is not None and method.upper() not in options.supported_methods:
            logger.debug("Skipping unsupported method: method=%s path=%s", method, path)
            await self.app(scope, receive, send)
            return

        logger.debug("Incoming HTTP request: method=%s path=%s", method, path)

        context = self._asgi_to_request_context(scope)
        resource = await self.resource_loader(scope)

        # bypassed requests stream straight to the client
        state = self._proxy.prepare(context, resource)
        if state is None:
            await self.app(scope, receive, send)
            return

        # Create a closure that captures scope and receive for this specific request
        async def render_page() -> Response:
            logger.debug("Rendering page with wrapped application: path=%s", path)

            status_code = 200
            response_headers: list[tuple[bytes, bytes]] = []
            response_body_chunks: list[bytes] = []

            async def inner_send(message: dict[str, t.Any]) -> None:
                nonlocal status_code, response_headers
                if message["type"] == "http.response.start":
                    status_code = message["status"]
                    response_headers = message.get("headers", [])
                    logger.debug("Application response started: status=%d", status_code)
                elif message["type"] == "http.response.body":
                    body_chunk = message.get("body", b"")
                    if body_chunk:
                        response_body_chunks.append(body_chunk)

            try:
                await self.app(scope, receive, inner_send)
            except Exception as e:
                logger.error(
                    "Error calling wrapped application: path=%s error=%s",
                    path,
                    str(e),
                    exc_info=True,
                )
                raise

            body = b"".join(response_body_chunks)
            logger.info(
                "Application response complete: status=%d total_bytes=%d chunks=%d",
                status_code,
                len(body),
                len(response_body_chunks),
            )
            return Response(
                status_code=status_code,
                headers=Headers.from_raw(response_headers),
                body=body,
            )

        response = await self._proxy.handle_state(state, render_page)

        logger.info(
            "Request processed: method=%s path=%s status=%d",
            method,
            path,
            response.status_code,
        )

        await self._send_internal_response(response, send)

    def _asgi_to_request_context(self, scope: _Scope) -> RequestContext:
        """
        Convert an ASGI HTTP scope to a RequestContext.

        The path keeps its percent-encoding, `raw_path` is used when the server provides it.
        """
        scheme = scope.get("scheme", "http")
        server = scope.get("server")

        if server is None:
            server = ("localhost", 80)
            logger.debug("No server info in scope, using default: localhost:80")

        headers = Headers.from_raw(scope.get("headers", []))

        host = headers.get("host")
        if not host:
            host = server[0]
            port = server[1] if server[1] is not None else (443 if scheme == "https" else 80)

            # Add port to host if non-standard
            if (scheme == "http" and port != 80) or (scheme == "https" and port != 443):
                host = f"{host}:{port}"

        raw_path = scope.get("raw_path")
        if raw_path:
            path = raw_path.decode("latin1").split("?", 1)[0]
        else:
            path = quote(scope.get("root_path", "") + scope.get("path", "/"), safe="/:@!$&'()*+,;=-._~%")

        query_string = scope.get("query_string", b"")
        if query_string:
            path = f"{path}?{query_string.decode('latin1')}"

        session = scope.get("session") or {}

        return RequestContext(
            method=scope.get("method", "GET"),
            url=f"{scheme}://{host}{path}",
            headers=headers,
            server_protocol=f"HTTP/{scope.get('http_version', '1.1')}",
            session_keys=frozenset(str(key) for key in session),
            username=_username_from_scope(scope),
        )

    async def _send_internal_response(self, response: Response, send: _Send) -> None:
        logger.debug(
            "Sending response to client: status=%d headers_count=%d",
            response.status_code,
            len(response.headers),
        )

        await send(
            {
                "type": "http.response.start",
                "status": response.status_code,
                "headers": response.headers.raw(),
            }
        )
        await send(
            {
                "type": "http.response.body",
                "body": response.body,
                "more_body": False,
            }
        )

    async def aclose(self) -> None:
        """Close the storage backend and release resources."""
        logger.info("Closing ASGILastModifiedMiddleware and storage backend")
        await self._proxy.aclose()

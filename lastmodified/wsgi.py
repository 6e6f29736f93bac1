from __future__ import annotations

import logging
import typing as t
from wsgiref.util import request_uri

from lastmodified._config import LastModifiedOptions
from lastmodified._core._headers import Headers
from lastmodified._core.models import PageResource, RequestContext, Response
from lastmodified._sync._storages import BaseStorage
from lastmodified._sync_processor import SyncPageCacheProxy

logger = logging.getLogger(__name__)

SESSION_ENVIRON_KEY = "lastmodified.session"
USERNAME_ENVIRON_KEY = "lastmodified.username"

_Environ = t.Dict[str, t.Any]
_StartResponse = t.Callable[..., t.Any]
_WSGIApp = t.Callable[[_Environ, _StartResponse], t.Iterable[bytes]]
_ResourceLoader = t.Callable[[_Environ], t.Optional[PageResource]]


def _headers_from_environ(environ: _Environ) -> Headers:
    headers = Headers()
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            headers[key[5:].replace("_", "-").title()] = value
        elif key in ("CONTENT_TYPE", "CONTENT_LENGTH") and value:
            headers[key.replace("_", "-").title()] = value
    return headers


class WSGILastModifiedMiddleware:
    """
    WSGI middleware that answers conditional requests and serves minified, cached pages.

    The WSGI counterpart of `lastmodified.asgi.ASGILastModifiedMiddleware`.
    Session keys are read from `environ["lastmodified.session"]` (a mapping or
    an iterable of keys), the user from `environ["lastmodified.username"]`,
    falling back to `REMOTE_USER`.

    :param app: The WSGI application to wrap.
    :param options: Parsed options, or a raw configuration mapping.
    :param resource_loader: Callable returning the PageResource of the requested page, or None.
    :param storage: The page cache backend, defaults to InMemoryStorage.
    """

    def __init__(
        self,
        app: _WSGIApp,
        options: t.Union[LastModifiedOptions, t.Mapping[str, t.Any]],
        resource_loader: _ResourceLoader,
        storage: BaseStorage | None = None,
    ) -> None:
        self.app = app
        self.resource_loader = resource_loader
        self._proxy = SyncPageCacheProxy(options=options, storage=storage)
        self.storage = self._proxy.storage

        logger.info(
            "Initialized WSGILastModifiedMiddleware with storage=%s, enabled=%s",
            type(self.storage).__name__,
            self._proxy.options is not None,
        )

    def __call__(self, environ: _Environ, start_response: _StartResponse) -> t.Iterable[bytes]:
        method = environ.get("REQUEST_METHOD", "GET")
        path = environ.get("PATH_INFO", "/")

        options = self._proxy.options
        if options is not None and method.upper() not in options.supported_methods:
            logger.debug("Skipping unsupported method: method=%s path=%s", method, path)
            return self.app(environ, start_response)

        logger.debug("Incoming HTTP request: method=%s path=%s", method, path)

        context = self._environ_to_request_context(environ)
        resource = self.resource_loader(environ)

        state = self._proxy.prepare(context, resource)
        if state is None:
            return self.app(environ, start_response)

        def render_page() -> Response:
            logger.debug("Rendering page with wrapped application: path=%s", path)
            captured: t.Dict[str, t.Any] = {}
            body_chunks: t.List[bytes] = []

            def inner_start_response(status: str, headers: t.List[t.Tuple[str, str]], exc_info: t.Any = None) -> t.Any:
                if exc_info is not None and captured:
                    raise exc_info[1].with_traceback(exc_info[2])
                captured["status"] = status
                captured["headers"] = headers
                return body_chunks.append

            body_iterable = self.app(environ, inner_start_response)
            try:
                body_chunks.extend(body_iterable)
            finally:
                close = getattr(body_iterable, "close", None)
                if close is not None:
                    close()

            status_code = int(captured.get("status", "200").split(" ", 1)[0])
            headers = Headers()
            for key, value in captured.get("headers", []):
                if key.lower() != "transfer-encoding":
                    headers[key] = value
            return Response(status_code=status_code, headers=headers, body=b"".join(body_chunks))

        response = self._proxy.handle_state(state, render_page)

        logger.info(
            "Request processed: method=%s path=%s status=%d",
            method,
            path,
            response.status_code,
        )

        status = f"{response.status_code} {response.reason_phrase}".rstrip()
        start_response(status, response.headers.multi_items())
        return [response.body]

    def _environ_to_request_context(self, environ: _Environ) -> RequestContext:
        session = environ.get(SESSION_ENVIRON_KEY) or ()
        username = environ.get(USERNAME_ENVIRON_KEY) or environ.get("REMOTE_USER") or None

        return RequestContext(
            method=environ.get("REQUEST_METHOD", "GET"),
            url=request_uri(environ, include_query=True),
            headers=_headers_from_environ(environ),
            server_protocol=environ.get("SERVER_PROTOCOL") or None,
            session_keys=frozenset(str(key) for key in session),
            username=username,
        )

    def close(self) -> None:
        """Close the storage backend and release resources."""
        logger.info("Closing WSGILastModifiedMiddleware and storage backend")
        self._proxy.close()

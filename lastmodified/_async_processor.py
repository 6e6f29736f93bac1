from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from typing_extensions import assert_never

from lastmodified._async._storages import AsyncBaseStorage, AsyncInMemoryStorage
from lastmodified._config import LastModifiedOptions
from lastmodified._core._packing import pack, unpack
from lastmodified._core._spec import (
    AnyState,
    Bypass,
    CacheLookup,
    CacheMiss,
    CouldNotBeStored,
    FromCache,
    Idle,
    NotModified,
    StoreAndServe,
)
from lastmodified._core.models import PageResource, RequestContext, Response
from lastmodified._exceptions import ConfigurationError

logger = logging.getLogger("lastmodified.proxy")


class AsyncPageCacheProxy:
    """
    Conditional caching and minification of rendered pages.

    This class is independent of any web framework and works only with internal models.
    It delegates page rendering to a caller-supplied callable, which is invoked only when
    the page has to be rendered: never for a 304 or a page cache hit.

    Args:
        options: Parsed options, or a raw configuration mapping. An invalid mapping
            disables the proxy, every request is then logged at ERROR and rendered untouched.
        storage: Page cache backend. Defaults to AsyncInMemoryStorage.
    """

    def __init__(
        self,
        options: Union[LastModifiedOptions, Mapping[str, Any]],
        storage: AsyncBaseStorage | None = None,
    ) -> None:
        self.storage = storage if storage is not None else AsyncInMemoryStorage()
        self.configuration_error: Optional[ConfigurationError] = None
        self.options: Optional[LastModifiedOptions] = None

        if isinstance(options, LastModifiedOptions):
            self.options = options
        else:
            try:
                self.options = LastModifiedOptions.from_mapping(options)
            except ConfigurationError as exc:
                self.configuration_error = exc
                logger.error("LastModified: %s Check configuration.", exc)

    def prepare(self, context: RequestContext, resource: Optional[PageResource]) -> Optional[AnyState]:
        """
        Run the request-only part of the pipeline.

        Returns the state to continue with, or None when the pipeline leaves the
        request alone and the page has to be rendered untouched. Integrations call
        it before buffering the wrapped application, so such responses can be
        streamed through as they are.
        """
        if self.options is None:
            logger.error("LastModified: %s Check configuration.", self.configuration_error)
            return None

        state = Idle(options=self.options)
        logger.debug("Handling state: %s", state.__class__.__name__)
        next_state = state.next(context, resource)
        if isinstance(next_state, Bypass):
            logger.debug("Handling state: %s", next_state.__class__.__name__)
            logger.debug("Bypassing page pipeline: %s", next_state.reason)
            return None
        return next_state

    async def handle_request(
        self,
        context: RequestContext,
        resource: Optional[PageResource],
        render: Callable[[], Awaitable[Response]],
    ) -> Response:
        state = self.prepare(context, resource)
        if state is None:
            return await render()
        return await self.handle_state(state, render)

    async def handle_state(self, state: AnyState, render: Callable[[], Awaitable[Response]]) -> Response:
        """Drive the pipeline from a state returned by `prepare` to the response."""
        while state:
            logger.debug("Handling state: %s", state.__class__.__name__)
            if isinstance(state, (Idle, Bypass)):
                raise RuntimeError(f"{state.__class__.__name__} is handled by prepare")
            elif isinstance(state, NotModified):
                return state.response
            elif isinstance(state, CacheLookup):
                state = await self._handle_cache_lookup(state)
            elif isinstance(state, FromCache):
                return state.response
            elif isinstance(state, CacheMiss):
                state = state.next(await render())
            elif isinstance(state, StoreAndServe):
                return await self._handle_store_and_serve(state)
            elif isinstance(state, CouldNotBeStored):
                return state.response
            else:
                assert_never(state)

        raise RuntimeError("Unreachable")

    async def _handle_cache_lookup(self, state: CacheLookup) -> AnyState:
        try:
            cached_entry = await self.storage.get(state.cache_key)
        except Exception:
            logger.error("Could not read the page cache: key=%s", state.cache_key, exc_info=True)
            return state.next(None, cache_available=False)

        stored = unpack(cached_entry)
        if cached_entry and stored is None:
            logger.warning("Ignoring unreadable page cache entry: key=%s", state.cache_key)
        logger.debug("Page cache %s: key=%s", "hit" if stored is not None and stored.body else "miss", state.cache_key)
        return state.next(stored)

    async def _handle_store_and_serve(self, state: StoreAndServe) -> Response:
        try:
            await self.storage.set(state.cache_key, pack(state.response), 0)
        except Exception:
            logger.error("Could not write the page cache: key=%s", state.cache_key, exc_info=True)
            return state.fallback()
        return state.response

    async def aclose(self) -> None:
        await self.storage.aclose()

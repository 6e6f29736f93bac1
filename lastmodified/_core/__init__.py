from lastmodified._core._headers import Headers as Headers
from lastmodified._core._keygen import generate_cache_key as generate_cache_key, prefers_webp as prefers_webp
from lastmodified._core._minify import (
    DEFAULT_RULES as DEFAULT_RULES,
    HtmlMinifier as HtmlMinifier,
    MinifyRule as MinifyRule,
    minify_html as minify_html,
)
from lastmodified._core._spec import (
    AnyState as AnyState,
    Bypass as Bypass,
    CacheLookup as CacheLookup,
    CacheMiss as CacheMiss,
    CouldNotBeStored as CouldNotBeStored,
    FromCache as FromCache,
    Idle as Idle,
    NotModified as NotModified,
    State as State,
    StoreAndServe as StoreAndServe,
    evaluate_conditional as evaluate_conditional,
    freshness_headers as freshness_headers,
)
from lastmodified._core._timestamps import resolve_last_modified as resolve_last_modified
from lastmodified._core.models import (
    PageResource as PageResource,
    RequestContext as RequestContext,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
    StoredPage as StoredPage,
)

__all__ = (
    # States
    "AnyState",
    "State",
    "Idle",
    "Bypass",
    "NotModified",
    "CacheLookup",
    "FromCache",
    "CacheMiss",
    "StoreAndServe",
    "CouldNotBeStored",
    # Models
    "Headers",
    "PageResource",
    "RequestContext",
    "Response",
    "ResponseMetadata",
    "StoredPage",
    # Building blocks
    "DEFAULT_RULES",
    "HtmlMinifier",
    "MinifyRule",
    "minify_html",
    "evaluate_conditional",
    "freshness_headers",
    "generate_cache_key",
    "prefers_webp",
    "resolve_last_modified",
)

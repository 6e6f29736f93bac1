from lastmodified._async._storages import (
    AsyncBaseStorage as AsyncBaseStorage,
    AsyncFileStorage as AsyncFileStorage,
    AsyncInMemoryStorage as AsyncInMemoryStorage,
    AsyncRedisStorage as AsyncRedisStorage,
    AsyncSQLiteStorage as AsyncSQLiteStorage,
)
from lastmodified._async_processor import AsyncPageCacheProxy as AsyncPageCacheProxy
from lastmodified._config import (
    FreshnessPolicy as FreshnessPolicy,
    LastModifiedOptions as LastModifiedOptions,
    PropagationOptions as PropagationOptions,
)
from lastmodified._core import (
    AnyState as AnyState,
    Bypass as Bypass,
    CacheLookup as CacheLookup,
    CacheMiss as CacheMiss,
    CouldNotBeStored as CouldNotBeStored,
    FromCache as FromCache,
    Headers as Headers,
    HtmlMinifier as HtmlMinifier,
    Idle as Idle,
    MinifyRule as MinifyRule,
    NotModified as NotModified,
    PageResource as PageResource,
    RequestContext as RequestContext,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
    State as State,
    StoreAndServe as StoreAndServe,
    StoredPage as StoredPage,
    evaluate_conditional as evaluate_conditional,
    freshness_headers as freshness_headers,
    generate_cache_key as generate_cache_key,
    minify_html as minify_html,
    prefers_webp as prefers_webp,
    resolve_last_modified as resolve_last_modified,
)
from lastmodified._exceptions import (
    ConfigurationError as ConfigurationError,
    LastModifiedError as LastModifiedError,
    StorageError as StorageError,
)
from lastmodified._propagation import (
    AsyncContentTree as AsyncContentTree,
    ContentTree as ContentTree,
    apropagate_edit as apropagate_edit,
    propagate_edit as propagate_edit,
)
from lastmodified._sync._storages import (
    BaseStorage as BaseStorage,
    FileStorage as FileStorage,
    InMemoryStorage as InMemoryStorage,
    RedisStorage as RedisStorage,
    SQLiteStorage as SQLiteStorage,
)
from lastmodified._sync_processor import SyncPageCacheProxy as SyncPageCacheProxy

__all__ = (
    ## States
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
    ## Models
    "Headers",
    "PageResource",
    "RequestContext",
    "Response",
    "ResponseMetadata",
    "StoredPage",
    ## Options
    "FreshnessPolicy",
    "LastModifiedOptions",
    "PropagationOptions",
    ## Building blocks
    "HtmlMinifier",
    "MinifyRule",
    "minify_html",
    "evaluate_conditional",
    "freshness_headers",
    "generate_cache_key",
    "prefers_webp",
    "resolve_last_modified",
    ## Storages
    "AsyncBaseStorage",
    "AsyncFileStorage",
    "AsyncInMemoryStorage",
    "AsyncRedisStorage",
    "AsyncSQLiteStorage",
    "BaseStorage",
    "FileStorage",
    "InMemoryStorage",
    "RedisStorage",
    "SQLiteStorage",
    # Proxy
    "AsyncPageCacheProxy",
    "SyncPageCacheProxy",
    # Propagation
    "ContentTree",
    "AsyncContentTree",
    "propagate_edit",
    "apropagate_edit",
    # Exceptions
    "LastModifiedError",
    "ConfigurationError",
    "StorageError",
)

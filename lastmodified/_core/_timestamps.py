from __future__ import annotations

import logging
from typing import Optional

from lastmodified._core.models import PageResource, StoredDate
from lastmodified._utils import parse_timestamp

logger = logging.getLogger("lastmodified.core.timestamps")


def resolve_last_modified(edited_on: StoredDate, created_on: StoredDate = None) -> Optional[int]:
    """
    Resolve the instant a page was last modified.

    The edit timestamp wins; the creation timestamp is used when the page
    was never edited or its edit timestamp does not parse. An unparseable
    value is treated exactly like a missing one.

    Returns:
        Unix timestamp in whole seconds, or None when neither value is usable.

    Examples:
        >>> resolve_last_modified("2024-01-10 12:00:00", "2023-01-01 00:00:00")
        1704888000
        >>> resolve_last_modified(0, "2024-01-10T12:00:00Z")
        1704888000
        >>> resolve_last_modified(None, "not a date") is None
        True
    """
    timestamp = parse_timestamp(edited_on)
    if timestamp is None:
        timestamp = parse_timestamp(created_on)
    return timestamp


def resolve_resource(resource: Optional[PageResource]) -> Optional[int]:
    if resource is None:
        return None
    timestamp = resolve_last_modified(resource.edited_on, resource.created_on)
    logger.debug("Resolved last modified timestamp: resource_id=%s timestamp=%s", resource.id, timestamp)
    return timestamp

from __future__ import annotations

import logging
import typing as tp

from lastmodified._config import PropagationOptions
from lastmodified._utils import now as current_time

logger = logging.getLogger("lastmodified.propagation")

__all__ = (
    "ContentTree",
    "AsyncContentTree",
    "propagate_edit",
    "apropagate_edit",
)


class ContentTree(tp.Protocol):
    def get_parent_ids(self, resource_id: int, depth: int, context_key: tp.Optional[str]) -> tp.List[int]:
        """Ancestor ids of the resource, nearest first, at most `depth` levels up."""
        ...

    def touch(self, resource_id: int, timestamp: int) -> bool:
        """Set the resource's `editedon` to the timestamp. False when the resource does not exist."""
        ...


class AsyncContentTree(tp.Protocol):
    async def get_parent_ids(self, resource_id: int, depth: int, context_key: tp.Optional[str]) -> tp.List[int]: ...

    async def touch(self, resource_id: int, timestamp: int) -> bool: ...


def _as_options(options: tp.Union[PropagationOptions, tp.Mapping[str, tp.Any]]) -> PropagationOptions:
    if isinstance(options, PropagationOptions):
        return options
    return PropagationOptions.from_mapping(options)


def propagate_edit(
    resource_id: int,
    options: tp.Union[PropagationOptions, tp.Mapping[str, tp.Any]],
    tree: ContentTree,
    context_key: tp.Optional[str] = None,
    now: tp.Optional[float] = None,
) -> tp.List[int]:
    """
    Mark the site start page and the ancestors of a saved resource as edited.

    Pages that list their children change whenever a child does, so their
    `Last-Modified` has to move forward too.

    The walk stops at the first resource that does not exist, and when the
    tree reports no ancestors at all; both are logged at ERROR.

    Returns:
        Ids of the resources that were touched, in order.
    """
    options = _as_options(options)
    timestamp = int(current_time() if now is None else now)
    touched: tp.List[int] = []

    if options.update_start and 0 < options.site_start != resource_id:
        if not tree.touch(options.site_start, timestamp):
            logger.error(
                "LastModified: got no resource for the main page with id %s for document %s.",
                options.site_start,
                resource_id,
            )
            return touched
        touched.append(options.site_start)

    if options.update_parent:
        parent_ids = tree.get_parent_ids(resource_id, options.update_level, context_key)
        if not parent_ids:
            logger.error(
                "LastModified: got an empty parent id list for document %s. Possible context violation.", resource_id
            )
            return touched

        for parent_id in parent_ids:
            if parent_id == 0:
                continue
            if not tree.touch(parent_id, timestamp):
                logger.error(
                    "LastModified: got no resource for the parent with id %s for document %s.",
                    parent_id,
                    resource_id,
                )
                return touched
            touched.append(parent_id)

    logger.debug("Propagated edit of document %s to %s", resource_id, touched)
    return touched


async def apropagate_edit(
    resource_id: int,
    options: tp.Union[PropagationOptions, tp.Mapping[str, tp.Any]],
    tree: AsyncContentTree,
    context_key: tp.Optional[str] = None,
    now: tp.Optional[float] = None,
) -> tp.List[int]:
    options = _as_options(options)
    timestamp = int(current_time() if now is None else now)
    touched: tp.List[int] = []

    if options.update_start and 0 < options.site_start != resource_id:
        if not await tree.touch(options.site_start, timestamp):
            logger.error(
                "LastModified: got no resource for the main page with id %s for document %s.",
                options.site_start,
                resource_id,
            )
            return touched
        touched.append(options.site_start)

    if options.update_parent:
        parent_ids = await tree.get_parent_ids(resource_id, options.update_level, context_key)
        if not parent_ids:
            logger.error(
                "LastModified: got an empty parent id list for document %s. Possible context violation.", resource_id
            )
            return touched

        for parent_id in parent_ids:
            if parent_id == 0:
                continue
            if not await tree.touch(parent_id, timestamp):
                logger.error(
                    "LastModified: got no resource for the parent with id %s for document %s.",
                    parent_id,
                    resource_id,
                )
                return touched
            touched.append(parent_id)

    logger.debug("Propagated edit of document %s to %s", resource_id, touched)
    return touched

from __future__ import annotations

import logging
import typing as tp
from dataclasses import dataclass, field

from lastmodified._exceptions import ConfigurationError
from lastmodified._utils import is_truthy, split_csv

logger = logging.getLogger("lastmodified.config")

__all__ = (
    "FreshnessPolicy",
    "LastModifiedOptions",
    "PropagationOptions",
    "OPTION_PREFIX",
)

OPTION_PREFIX = "lastmodified."

DEFAULT_LIFETIME = 3600
DEFAULT_USERNAME = "(anonymous)"
VISIBILITIES = ("private", "public")


def get_option(mapping: tp.Mapping[str, tp.Any], name: str, default: tp.Any = None) -> tp.Any:
    """
    Look an option up by its namespaced name first, then by its bare name.

    Example:
        ```python
        get_option({"lastmodified.maxage": "60", "maxage": "10"}, "maxage")
        # '60'
        ```
    """
    for key in (OPTION_PREFIX + name, name):
        if key in mapping and mapping[key] is not None:
            return mapping[key]
    return default


def parse_positive_int(value: tp.Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@dataclass(frozen=True)
class FreshnessPolicy:
    """
    What the freshness headers of a page advertise.

    Attributes:
    ----------
    visibility : str
        Either "public" or "private", rendered as the Cache-Control directive.
    max_age : int
        Seconds rendered as `max-age`. Non-positive values mean the default.
    expires : int
        Offset from "now" rendered as the `Expires` date. Non-positive values mean the default.
    """

    visibility: str
    max_age: int = DEFAULT_LIFETIME
    expires: int = DEFAULT_LIFETIME

    def __post_init__(self) -> None:
        visibility = self.visibility.strip() if isinstance(self.visibility, str) else self.visibility
        if visibility not in VISIBILITIES:
            raise ConfigurationError(
                f"Wrong response directive value {self.visibility!r}, expected one of {', '.join(VISIBILITIES)}."
            )
        object.__setattr__(self, "visibility", visibility)
        object.__setattr__(self, "max_age", parse_positive_int(self.max_age, DEFAULT_LIFETIME))
        object.__setattr__(self, "expires", parse_positive_int(self.expires, DEFAULT_LIFETIME))

    @property
    def cache_control(self) -> str:
        return f"{self.visibility}, max-age={self.max_age}"


@dataclass(frozen=True)
class LastModifiedOptions:
    """
    Request-time options of the conditional caching and minification pipeline.

    Build it from a flat configuration mapping with `from_mapping`; keys may
    carry the `lastmodified.` prefix.
    """

    policy: FreshnessPolicy

    prevent_authorized: bool = False
    """When True, requests made by anyone but the default account bypass the pipeline."""

    default_username: str = DEFAULT_USERNAME
    """Name of the anonymous account."""

    prevent_session: tp.FrozenSet[str] = frozenset()
    """Lowercased session keys whose presence bypasses the pipeline."""

    site_url: tp.Optional[str] = None
    """Canonical origin used in cache keys. The request's own origin is used when unset."""

    supported_methods: tp.Tuple[str, ...] = field(default=("GET", "HEAD"))
    """HTTP methods the pipeline handles. Every other method bypasses it."""

    @classmethod
    def from_mapping(cls, mapping: tp.Mapping[str, tp.Any]) -> "LastModifiedOptions":
        """
        Parse and validate a configuration mapping.

        Raises:
            ConfigurationError: When `response` is not "public"/"private", or
                `prevent_session` is set but lists no session key.
        """
        raw_prevent_session = get_option(mapping, "prevent_session", "")
        prevent_session: tp.FrozenSet[str] = frozenset()
        if isinstance(raw_prevent_session, str) and raw_prevent_session.strip():
            keys = split_csv(raw_prevent_session)
            if not keys:
                raise ConfigurationError(f"Incorrect prevent session list {raw_prevent_session!r}.")
            prevent_session = frozenset(keys)
        elif raw_prevent_session and not isinstance(raw_prevent_session, str):
            prevent_session = frozenset(str(key).strip().lower() for key in raw_prevent_session if str(key).strip())
            if not prevent_session:
                raise ConfigurationError(f"Incorrect prevent session list {raw_prevent_session!r}.")

        policy = FreshnessPolicy(
            visibility=str(get_option(mapping, "response", "")),
            max_age=get_option(mapping, "maxage", DEFAULT_LIFETIME),
            expires=get_option(mapping, "expires", DEFAULT_LIFETIME),
        )

        site_url = get_option(mapping, "site_url")
        options = cls(
            policy=policy,
            prevent_authorized=is_truthy(get_option(mapping, "prevent_authorized", False)),
            default_username=str(get_option(mapping, "default_username", DEFAULT_USERNAME)),
            prevent_session=prevent_session,
            site_url=str(site_url).rstrip("/") if site_url else None,
        )
        logger.debug("Parsed options: %r", options)
        return options


@dataclass(frozen=True)
class PropagationOptions:
    """Options of the post-save propagation of `editedon` timestamps."""

    update_start: bool = False
    site_start: int = 0
    update_parent: bool = False
    update_level: int = 1

    @classmethod
    def from_mapping(cls, mapping: tp.Mapping[str, tp.Any]) -> "PropagationOptions":
        try:
            site_start = int(str(get_option(mapping, "site_start", 0)).strip())
        except ValueError:
            site_start = 0
        return cls(
            update_start=is_truthy(get_option(mapping, "update_start", False)),
            site_start=site_start,
            update_parent=is_truthy(get_option(mapping, "update_parent", False)),
            update_level=parse_positive_int(get_option(mapping, "update_level", 1), 1),
        )

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, List, Mapping, MutableMapping, Optional, Tuple, Union

from lastmodified._utils import HEADERS_ENCODING

__all__ = (
    "Headers",
    "MediaRange",
    "parse_accept",
    "accepts_media_type",
)


class Headers(MutableMapping[str, str]):
    """
    Case-insensitive, multi-valued HTTP header mapping.

    Setting a key appends a value; reading a key joins all values with ", ".
    """

    def __init__(self, headers: Mapping[str, Union[str, List[str]]] | None = None) -> None:
        self._headers = {k.lower(): ([v] if isinstance(v, str) else v[:]) for k, v in (headers or {}).items()}

    @classmethod
    def from_raw(cls, raw_headers: Iterator[Tuple[bytes, bytes]] | List[Tuple[bytes, bytes]]) -> "Headers":
        headers = cls()
        for key, value in raw_headers:
            headers[key.decode(HEADERS_ENCODING)] = value.decode(HEADERS_ENCODING)
        return headers

    def get_list(self, key: str) -> Optional[List[str]]:
        return self._headers.get(key.lower(), None)

    def replace(self, key: str, value: str) -> None:
        self._headers[key.lower()] = [value]

    def multi_items(self) -> List[Tuple[str, str]]:
        return [(key, value) for key, values in self._headers.items() for value in values]

    def raw(self) -> List[Tuple[bytes, bytes]]:
        return [(key.encode(HEADERS_ENCODING), value.encode(HEADERS_ENCODING)) for key, value in self.multi_items()]

    def __getitem__(self, key: str) -> str:
        return ", ".join(self._headers[key.lower()])

    def __setitem__(self, key: str, value: str) -> None:
        self._headers.setdefault(key.lower(), []).append(value)

    def __delitem__(self, key: str) -> None:
        del self._headers[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        return repr(self._headers)

    def __str__(self) -> str:
        return str(self._headers)

    def __eq__(self, other_headers: Any) -> bool:
        return isinstance(other_headers, Headers) and self._headers == other_headers._headers  # type: ignore


@dataclass
class MediaRange:
    type: str
    subtype: str
    quality: float = 1.0

    def matches(self, media_type: str) -> bool:
        """Exact match on `type/subtype`, wildcards such as `image/*` do not match."""
        return f"{self.type}/{self.subtype}" == media_type.lower()


def parse_quality(value: str) -> float:
    """Parse a `q` parameter, clamping to [0, 1]. Invalid values mean 1."""
    try:
        quality = float(value)
    except ValueError:
        return 1.0
    if quality != quality:  # NaN
        return 1.0
    return min(max(quality, 0.0), 1.0)


def parse_accept(accept_value: str) -> List[MediaRange]:
    """
    Parse an Accept header value into media ranges.

    Malformed elements are skipped.

    Examples:
        >>> [(r.type, r.subtype, r.quality) for r in parse_accept("text/html, image/webp;q=0.8")]
        [('text', 'html', 1.0), ('image', 'webp', 0.8)]
        >>> parse_accept("garbage")
        []
    """
    ranges: List[MediaRange] = []

    for element in accept_value.split(","):
        media_type, *params = element.split(";")
        media_type = media_type.strip().lower()

        if media_type.count("/") != 1:
            continue

        type_, subtype = media_type.split("/")
        if not type_ or not subtype:
            continue

        quality = 1.0
        for param in params:
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                quality = parse_quality(value.strip())

        ranges.append(MediaRange(type=type_, subtype=subtype, quality=quality))
    return ranges


def accepts_media_type(accept_value: Optional[str], media_type: str) -> bool:
    if not accept_value:
        return False
    return any(
        media_range.matches(media_type) and media_range.quality > 0 for media_range in parse_accept(accept_value)
    )

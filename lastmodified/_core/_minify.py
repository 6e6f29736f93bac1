from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Sequence

logger = logging.getLogger("lastmodified.core.minify")

__all__ = (
    "MinifyRule",
    "DEFAULT_RULES",
    "HtmlMinifier",
    "minify_html",
)

BODY_ENCODING = "utf-8"


@dataclass(frozen=True)
class MinifyRule:
    """
    A single find/replace step of the minifier.

    Attributes:
    ----------
    name : str
        Short identifier used in logs and tests.
    pattern : str
        Regular expression, always compiled with MULTILINE.
    replacement : str
        `re.sub` replacement template.
    """

    name: str
    pattern: str
    replacement: str
    compiled: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "compiled", re.compile(self.pattern, re.MULTILINE))

    def apply(self, text: str) -> str:
        return self.compiled.sub(self.replacement, text)


# Order matters: every rule assumes the ones before it already ran.
# Newlines survive until rule 5 because inline scripts may depend on them.
DEFAULT_RULES: List[MinifyRule] = [
    MinifyRule("normalize-line-endings", r"\r\n?", "\n"),
    # 1. whitespace after ">" / before "<" that contains anything but plain spaces
    MinifyRule("strip-after-tag", r">[ ]*[\t\n\f\v][\t\n\f\v ]*", ">"),
    MinifyRule("strip-before-tag", r"(?<![\t\n\f\v ])[\t\n\f\v ]*[\t\n\f\v][ ]*<", "<"),
    # 2.
    MinifyRule("collapse-horizontal-whitespace", r"[\t ]+", " "),
    # 3.
    MinifyRule("trim-lines", r"^[\t ]+|[\t ]+$", ""),
    # 4. never after ">", "=", ":" or "/", which keeps "http://host" and attribute values intact
    MinifyRule(
        "strip-line-comments",
        r"(?:^|(?<=[^>=:/\s]))[\t ]*//[a-zA-Z0-9 ]+(?://[a-zA-Z0-9 ]+)*$",
        "",
    ),
    # 5.
    MinifyRule("collapse-blank-lines", r"\n(?:[\t ]?\n)+", "\n"),
    # 6.
    MinifyRule("collapse-between-tags", r">[\n\t ]+<", "><"),
    # 7.
    MinifyRule("join-after-brace", r"\}[\n\t ]+", "}"),
    MinifyRule("join-after-brace-comma", r"\},[\n\t ]+", "},"),
    # 8.
    MinifyRule("join-paren-brace", r"\)[\n\t ]?\{[\n\t ]+", "){"),
    MinifyRule("join-comma-brace", r",[\n\t ]?\{[\n\t ]+", ",{"),
    # 9.
    MinifyRule("join-paren-comma", r"\),[\n\t ]+", "),"),
    # 10. the whitespace character around the attribute is kept as is
    MinifyRule(
        "unquote-attributes",
        r'([\n\t ])?([a-zA-Z0-9]+)="((?:[a-zA-Z0-9_\-]|/(?!/))+)"(?![=/])([\n\t ])?',
        r"\1\2=\3\4",
    ),
]


class HtmlMinifier:
    """
    Deterministic regex-based HTML/inline-JS minifier.

    The rules run once, left to right; the output of the default rule set
    is a fixed point, so minifying twice gives the same bytes as minifying
    once.

    Args:
        rules: The ordered rules to apply. Defaults to `DEFAULT_RULES`.

    Example:
        ```python
        minifier = HtmlMinifier()
        minifier.transform("<div>\\n\\n\\n<span>  hi  </span>\\n</div>")
        # '<div><span> hi </span></div>'
        ```
    """

    def __init__(self, rules: Optional[Sequence[MinifyRule]] = None) -> None:
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def transform(self, body: str) -> str:
        for rule in self.rules:
            body = rule.apply(body)
        return body

    def transform_bytes(self, body: bytes, encoding: str = BODY_ENCODING) -> bytes:
        """Minify a raw body. Undecodable bytes pass through unchanged."""
        text = body.decode(encoding, "surrogateescape")
        minified = self.transform(text).encode(encoding, "surrogateescape")
        logger.debug("Minified page body: before=%d bytes after=%d bytes", len(body), len(minified))
        return minified


def minify_html(body: str) -> str:
    return HtmlMinifier().transform(body)

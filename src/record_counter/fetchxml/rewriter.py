"""Root-element rewriting for FetchXML stored queries.

Only the attribute set of the ``<fetch>`` start tag is parsed and rewritten.
Everything before and after that tag (filters, orders, link-entities) is kept
as opaque text and emitted byte-for-byte.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace

from record_counter.errors import MalformedQueryError

PAGE_ATTR = "page"
COUNT_ATTR = "count"
PAGING_COOKIE_ATTR = "paging-cookie"
TOTAL_COUNT_ATTR = "returntotalrecordcount"

_PAGINATION_ATTRS = (PAGE_ATTR, COUNT_ATTR, PAGING_COOKIE_ATTR)

_ROOT_START_RE = re.compile(r"<(fetch)(?=[\s/>])", re.IGNORECASE)
_COMMENT_RE = re.compile(r"<!--.*?(?:-->|\Z)", re.DOTALL)
_ATTRIBUTE_RE = re.compile(
    r"""\s+([A-Za-z_:][-A-Za-z0-9_:.]*)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'<>/=`]+))"""
)
_TAG_END_RE = re.compile(r"\s*(/?>)")


@dataclass(frozen=True)
class Attribute:
    name: str
    value: str
    quote: str = '"'

    def render(self) -> str:
        return f"{self.name}={self.quote}{self.value}{self.quote}"


@dataclass(frozen=True)
class FetchRoot:
    """The parsed ``<fetch>`` start tag plus the untouched surrounding text."""

    prefix: str
    tag: str
    attributes: tuple[Attribute, ...] = field(default_factory=tuple)
    tag_end: str = ">"
    suffix: str = ""

    def get(self, name: str) -> str | None:
        for attr in self.attributes:
            if attr.name.lower() == name.lower():
                return attr.value
        return None

    def without(self, *names: str) -> FetchRoot:
        drop = {n.lower() for n in names}
        kept = tuple(a for a in self.attributes if a.name.lower() not in drop)
        return replace(self, attributes=kept)

    def with_attribute(self, name: str, value: str) -> FetchRoot:
        """Set an attribute, replacing it in place when already present."""
        attrs = list(self.attributes)
        for i, attr in enumerate(attrs):
            if attr.name.lower() == name.lower():
                attrs[i] = Attribute(attr.name, value, '"')
                return replace(self, attributes=tuple(attrs))
        attrs.append(Attribute(name, value))
        return replace(self, attributes=tuple(attrs))

    def render(self) -> str:
        rendered = "".join(f" {a.render()}" for a in self.attributes)
        return f"{self.prefix}<{self.tag}{rendered}{self.tag_end}{self.suffix}"


def parse_root(document: str) -> FetchRoot:
    """Parse the root ``<fetch>`` start tag of a FetchXML document.

    Raises MalformedQueryError when no root element can be found or its
    attributes cannot be tokenized.
    """
    if not document or not document.strip():
        raise MalformedQueryError("Stored query is empty")

    start = _find_root_start(document)
    if start is None:
        raise MalformedQueryError("Stored query has no <fetch> root element")

    pos = start.end()
    attributes: list[Attribute] = []
    seen: set[str] = set()
    while True:
        end = _TAG_END_RE.match(document, pos)
        if end is not None:
            break
        match = _ATTRIBUTE_RE.match(document, pos)
        if match is None:
            raise MalformedQueryError(
                f"Cannot parse <fetch> attributes near offset {pos}"
            )
        name = match.group(1)
        if match.group(2) is not None:
            value, quote = match.group(2), '"'
        elif match.group(3) is not None:
            value, quote = match.group(3), "'"
        else:
            value, quote = match.group(4), '"'
        if name.lower() in seen:
            raise MalformedQueryError(f"Duplicate <fetch> attribute: {name}")
        seen.add(name.lower())
        attributes.append(Attribute(name, value, quote))
        pos = match.end()

    return FetchRoot(
        prefix=document[: start.start()],
        tag=start.group(1),
        attributes=tuple(attributes),
        tag_end=end.group(1),
        suffix=document[end.end():],
    )


def _find_root_start(document: str) -> re.Match[str] | None:
    """First ``<fetch`` start tag that is not inside an XML comment."""
    comments = [m.span() for m in _COMMENT_RE.finditer(document)]
    for match in _ROOT_START_RE.finditer(document):
        if not any(lo <= match.start() < hi for lo, hi in comments):
            return match
    return None


def rewrite_for_page(document: str, page: int, page_size: int) -> str:
    """Rewrite a FetchXML document to fetch one page of ``page_size`` rows.

    Existing page, count and paging-cookie attributes are dropped before the
    new ones are appended, so rewriting is idempotent.
    """
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")

    root = parse_root(document).without(*_PAGINATION_ATTRS)
    root = root.with_attribute(PAGE_ATTR, str(page)).with_attribute(COUNT_ATTR, str(page_size))
    return root.render()


def rewrite_for_total_count(document: str) -> str:
    """Rewrite a FetchXML document to return the total record count with one row."""
    root = parse_root(document).without(PAGE_ATTR, PAGING_COOKIE_ATTR)
    root = root.with_attribute(TOTAL_COUNT_ATTR, "true").with_attribute(COUNT_ATTR, "1")
    return root.render()

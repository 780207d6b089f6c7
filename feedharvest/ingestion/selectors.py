"""
DOM Selector Engine
===================

Minimal CSS selector matching over BeautifulSoup trees.

Supported: tag names, ``.class``, ``#id``, ``[attr]``, ``[attr=value]``
(quotes optional), compounds of these (``section[name='articleBody']``) and
descendant chains separated by whitespace. Child and sibling combinators
are not supported; a selector using them never matches.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from itertools import chain
from typing import Iterator, Optional, Tuple

from bs4 import Tag

_TAG_RE = re.compile(r"[a-zA-Z][\w-]*|\*")
_SIMPLE_RE = re.compile(
    r"""
    \.(?P<cls>[\w-]+)
    | \#(?P<id>[\w-]+)
    | \[\s*(?P<attr>[\w:-]+)\s*
        (?:=\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\]\s]*))\s*)?
      \]
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class AttributeTest:
    name: str
    value: Optional[str] = None  # None tests presence only


@dataclass(frozen=True)
class CompoundSelector:
    """Conjunction of simple selectors that must hold on one element."""

    tag: Optional[str] = None
    classes: Tuple[str, ...] = ()
    element_id: Optional[str] = None
    attributes: Tuple[AttributeTest, ...] = ()

    def matches(self, node: Tag) -> bool:
        if self.tag and self.tag != "*" and node.name != self.tag:
            return False

        if self.element_id is not None and node.get("id") != self.element_id:
            return False

        if self.classes:
            node_classes = _attribute_text(node, "class").split()
            if any(cls not in node_classes for cls in self.classes):
                return False

        for test in self.attributes:
            if not node.has_attr(test.name):
                return False
            if test.value is not None and _attribute_text(node, test.name) != test.value:
                return False

        return True


def _attribute_text(node: Tag, name: str) -> str:
    # bs4 splits multi-valued attributes such as class and rel into lists
    value = node.get(name)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return str(value)


def _parse_compound(text: str) -> Optional[CompoundSelector]:
    pos = 0
    tag = None
    tag_match = _TAG_RE.match(text)
    if tag_match:
        tag = tag_match.group(0).lower()
        pos = tag_match.end()

    classes = []
    element_id = None
    attributes = []
    while pos < len(text):
        match = _SIMPLE_RE.match(text, pos)
        if not match:
            return None
        if match.group("cls"):
            classes.append(match.group("cls"))
        elif match.group("id"):
            element_id = match.group("id")
        else:
            value = next(
                (match.group(g) for g in ("dq", "sq", "bare") if match.group(g) is not None),
                None,
            )
            attributes.append(AttributeTest(match.group("attr"), value))
        pos = match.end()

    if tag is None and not classes and element_id is None and not attributes:
        return None

    return CompoundSelector(tag, tuple(classes), element_id, tuple(attributes))


@lru_cache(maxsize=512)
def parse_selector(selector: str) -> Optional[Tuple[CompoundSelector, ...]]:
    """Parse a descendant chain into compounds, or None if unsupported."""
    parts = []
    for token in _split_descendants(selector):
        compound = _parse_compound(token)
        if compound is None:
            return None
        parts.append(compound)
    return tuple(parts) or None


def _split_descendants(selector: str):
    # Whitespace inside [...] does not separate chain components
    tokens, current, depth = [], [], 0
    for char in selector.strip():
        if char == "[":
            depth += 1
        elif char == "]":
            depth = max(0, depth - 1)
        if char.isspace() and depth == 0:
            if current:
                tokens.append("".join(current))
                current = []
            continue
        current.append(char)
    if current:
        tokens.append("".join(current))
    return tokens


def _is_element(node) -> bool:
    return isinstance(node, Tag) and node.name != "[document]"


def _matches_chain(node: Tag, parts: Tuple[CompoundSelector, ...]) -> bool:
    if not parts[-1].matches(node):
        return False
    if len(parts) == 1:
        return True

    ancestor = node.parent
    while _is_element(ancestor):
        if _matches_chain(ancestor, parts[:-1]):
            return True
        ancestor = ancestor.parent
    return False


def matches_selector(node: Tag, selector: str) -> bool:
    """Whether ``node`` satisfies ``selector``."""
    if not _is_element(node):
        return False
    parts = parse_selector(selector)
    if parts is None:
        return False
    return _matches_chain(node, parts)


def find_all_matching(root: Tag, selector: str) -> Iterator[Tag]:
    """Yield every element under ``root`` (inclusive) matching ``selector``, in document order."""
    parts = parse_selector(selector)
    if parts is None:
        return
    for node in chain((root,), root.descendants):
        if _is_element(node) and _matches_chain(node, parts):
            yield node


def find_first(root: Tag, selector: str) -> Optional[Tag]:
    """First match in depth-first pre-order, ``root`` included."""
    return next(find_all_matching(root, selector), None)

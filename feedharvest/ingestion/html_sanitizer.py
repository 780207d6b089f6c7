"""
HTML Sanitizer
==============

Strips navigation, advertising and tracking blocks from article HTML and
reduces what is left to a small allow-list of content elements.

Every call parses its own tree, so input markup or trees owned by callers
are never modified.
"""

import re
from types import MappingProxyType
from typing import Optional

from bs4 import BeautifulSoup, Comment, Tag
from bs4.element import CData, Declaration, Doctype, ProcessingInstruction

from ..utils.logging import get_logger_for_component

MAX_SANITIZED_LENGTH = 100_000

# Dropped together with their content
REMOVAL_TAGS = frozenset(
    {
        "nav",
        "aside",
        "footer",
        "header",
        "script",
        "style",
        "noscript",
        "iframe",
        "object",
        "embed",
        "form",
        "input",
        "button",
        "select",
        "textarea",
    }
)

AD_PATTERN = re.compile(
    r"(advertisement|ad-container|ads|sidebar|nav|navigation|menu|header|footer|"
    r"comments|social|share|related|popup|overlay|banner|promo|sponsored|widget)",
    re.IGNORECASE,
)

UNWANTED_MARKERS = (
    "social",
    "share",
    "comment",
    "related",
    "popup",
    "modal",
    "subscription",
    "newsletter",
    "cookie",
    "gdpr",
    "privacy",
    "search",
    "login",
    "signup",
    "register",
    "breadcrumb",
)

TRACKING_MARKERS = ("track", "analytics", "ga-")

_INSPECTED_ATTRIBUTES = ("class", "id", "role")

ALLOWED_TAGS = frozenset(
    {
        "p", "br", "strong", "b", "em", "i", "u", "strike", "del", "ins",
        "h1", "h2", "h3", "h4", "h5", "h6",
        "ul", "ol", "li",
        "a", "img",
        "blockquote", "q", "cite", "code", "pre",
        "table", "thead", "tbody", "tr", "td", "th",
        "div", "span",
    }
)

ALLOWED_ATTRIBUTES = MappingProxyType(
    {
        "a": frozenset({"href"}),
        "img": frozenset({"src", "alt", "title"}),
    }
)

_URL_ATTRIBUTES = frozenset({"href", "src"})
_UNSAFE_URL_PATTERN = re.compile(r"^\s*(javascript|vbscript|data):", re.IGNORECASE)

_SHELL_TAGS = ("p", "div", "span")

WHITESPACE_PATTERN = re.compile(r"\s+")
REPEATED_BREAKS_PATTERN = re.compile(r"(<br\s*/?>\s*){3,}", re.IGNORECASE)
COMMENT_PATTERN = re.compile(r"<!--.*?-->", re.DOTALL)

# Fallback patterns for markup the parser rejects
_SCRIPT_STYLE_BLOCK = re.compile(r"<(script|style)[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_LAYOUT_BLOCK = re.compile(
    r"<(nav|aside|footer|header|form)[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)
_TAG_PATTERN = re.compile(r"<(/?)([a-zA-Z][a-zA-Z0-9]*)([^>]*)>")
_ATTRIBUTE_PATTERN = re.compile(
    r"""([a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*("[^"]*"|'[^']*'|[^\s"'>]+)"""
)


def _attribute_value(value) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return str(value)


def is_unwanted_element(node: Tag) -> bool:
    """Whether a node is navigation, advertising or tracking furniture."""
    if node.name in REMOVAL_TAGS:
        return True

    for key, raw_value in node.attrs.items():
        if key in _INSPECTED_ATTRIBUTES:
            value = _attribute_value(raw_value).lower()
            if AD_PATTERN.search(value):
                return True
            if any(marker in value for marker in UNWANTED_MARKERS):
                return True

        if key.startswith("data-") and any(marker in key for marker in TRACKING_MARKERS):
            return True

    return False


class HTMLSanitizer:
    """Allow-list HTML sanitizer with ad and navigation pruning."""

    def __init__(self, max_length: int = MAX_SANITIZED_LENGTH):
        self.max_length = max_length
        self.parser = "html.parser"
        self.logger = get_logger_for_component("sanitizer")

    def clean_html(self, raw_html: Optional[str]) -> str:
        """Sanitize article HTML.

        Args:
            raw_html: Markup to clean

        Returns:
            Sanitized markup, possibly empty
        """
        if not raw_html or not raw_html.strip():
            return ""

        try:
            soup = BeautifulSoup(raw_html, self.parser)
        except Exception as e:
            self.logger.warning(f"HTML parse failed, using regex cleanup: {e}")
            return self._basic_clean(raw_html)

        try:
            self._remove_non_content_nodes(soup)
            self._prune_unwanted(soup)
            self._apply_allow_list(soup)
            self._remove_empty_shells(soup)
            cleaned = soup.decode(formatter="html5")
        except Exception as e:
            self.logger.warning(f"HTML cleanup failed, using regex cleanup: {e}")
            return self._basic_clean(raw_html)

        return self._post_process(cleaned)

    def extract_text(self, html_content: Optional[str]) -> str:
        """Visible text of a fragment, ignoring script and style."""
        if not html_content:
            return ""
        soup = BeautifulSoup(html_content, self.parser)
        for element in soup(["script", "style"]):
            element.decompose()
        return soup.get_text()

    def _remove_non_content_nodes(self, soup: BeautifulSoup) -> None:
        """Remove comments, CDATA, doctype and processing instructions."""
        for node in soup.find_all(
            string=lambda text: isinstance(
                text, (Comment, CData, ProcessingInstruction, Doctype, Declaration)
            )
        ):
            node.extract()

    def _prune_unwanted(self, root: Tag) -> None:
        # Explicit stack, page nesting depth is unbounded
        pending = [root]
        while pending:
            node = pending.pop()
            for child in list(node.children):
                if not isinstance(child, Tag):
                    continue
                if is_unwanted_element(child):
                    child.decompose()
                else:
                    pending.append(child)

    def _apply_allow_list(self, soup: BeautifulSoup) -> None:
        # Reversed document order handles descendants before their ancestors
        for element in reversed(soup.find_all(True)):
            if element.name not in ALLOWED_TAGS:
                element.unwrap()
                continue

            allowed = ALLOWED_ATTRIBUTES.get(element.name, frozenset())
            for attr in list(element.attrs):
                if attr not in allowed:
                    del element[attr]
                elif attr in _URL_ATTRIBUTES and _UNSAFE_URL_PATTERN.match(
                    _attribute_value(element[attr])
                ):
                    del element[attr]

    def _remove_empty_shells(self, soup: BeautifulSoup) -> None:
        for element in reversed(soup.find_all(_SHELL_TAGS)):
            if element.find(True) is None and not element.get_text(strip=True):
                element.decompose()

    def _post_process(self, content: str) -> str:
        content = WHITESPACE_PATTERN.sub(" ", content)
        content = re.sub(r"<(p|div|span)>\s*</\1>", "", content)
        content = REPEATED_BREAKS_PATTERN.sub("<br><br>", content)
        content = COMMENT_PATTERN.sub("", content)
        content = content.strip()

        if len(content) > self.max_length:
            content = content[: self.max_length] + "..."

        return content

    def _basic_clean(self, raw_html: str) -> str:
        """Regex-only cleanup for markup the HTML parser rejects."""
        content = _SCRIPT_STYLE_BLOCK.sub("", raw_html)
        content = _LAYOUT_BLOCK.sub("", content)
        content = COMMENT_PATTERN.sub("", content)
        content = _TAG_PATTERN.sub(self._rewrite_tag, content)
        return self._post_process(content)

    @staticmethod
    def _rewrite_tag(match: re.Match) -> str:
        closing, name, attributes = match.group(1), match.group(2).lower(), match.group(3)
        if name not in ALLOWED_TAGS:
            return ""
        if closing:
            return f"</{name}>"

        kept = []
        allowed = ALLOWED_ATTRIBUTES.get(name, frozenset())
        for attr_match in _ATTRIBUTE_PATTERN.finditer(attributes):
            attr = attr_match.group(1).lower()
            value = attr_match.group(2).strip("\"'")
            if attr not in allowed:
                continue
            if attr in _URL_ATTRIBUTES and _UNSAFE_URL_PATTERN.match(value):
                continue
            kept.append(f'{attr}="{value}"')

        return f"<{name}{' ' + ' '.join(kept) if kept else ''}>"

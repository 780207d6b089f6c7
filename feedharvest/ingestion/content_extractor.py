"""
Content Extractor
=================

Fetches article pages and pulls out the lead image and the main body.

Body selection tries, in order: the page host's platform selectors, the
platform selectors of the document's declared base/canonical URL, a list of
generic content selectors, and finally the element holding the most text.
Each candidate must pass the content quality gate before it is accepted.
"""

import asyncio
import re
from typing import Optional, Sequence, Set
from urllib.parse import urljoin

import aiohttp
from bs4 import BeautifulSoup, Tag
from bs4.element import PreformattedString

from ..models import ExtractedContent
from ..utils.exceptions import ErrorCode, ExtractionError
from ..utils.logging import get_logger_for_component
from .html_sanitizer import HTMLSanitizer
from .platforms import get_platform_selectors
from .selectors import find_first

PAGE_ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

GENERIC_CONTENT_SELECTORS = (
    "article",
    "main",
    ".content",
    ".post-content",
    ".entry-content",
    ".article-content",
    ".story-body",
    ".post-body",
    "[role=main]",
    "[itemprop='articleBody']",
    ".article-body",
    ".post-body-content",
    ".article",
    ".blog-post",
)

IMAGE_META_PROPERTIES = ("og:image", "twitter:image")
IMAGE_CONTAINER_SELECTORS = ("article", "main", ".content", ".post-content", ".entry-content")

NAVIGATION_PHRASES = (
    "menu",
    "navigation",
    "subscribe",
    "newsletter",
    "follow us",
    "social media",
    "share this",
)

MIN_CONTENT_CHARS = 100
MIN_CONTENT_WORDS = 20
MIN_TEXT_TO_MARKUP_RATIO = 0.1
MAX_NAVIGATION_RATIO = 0.2
MAX_EXTRACTED_LENGTH = 50_000

_WHITESPACE = re.compile(r"\s+")
_DOCUMENT_ROOTS = frozenset({"html", "head", "body"})
_HIDDEN_TEXT_TAGS = ("script", "style", "noscript", "template")


def is_good_content(markup: Optional[str], sanitizer: Optional[HTMLSanitizer] = None) -> bool:
    """Heuristic check that a fragment is article prose rather than page furniture.

    Rejects fragments with under 100 characters or 20 words of text, with
    text making up less than a tenth of the markup, or where navigation
    phrases amount to more than a fifth of the word count.
    """
    if not markup:
        return False

    text = (sanitizer or HTMLSanitizer()).extract_text(markup).strip()
    if len(text) < MIN_CONTENT_CHARS:
        return False

    words = text.split()
    if len(words) < MIN_CONTENT_WORDS:
        return False

    if len(text) / len(markup) < MIN_TEXT_TO_MARKUP_RATIO:
        return False

    lowered = text.lower()
    navigation_hits = sum(lowered.count(phrase) for phrase in NAVIGATION_PHRASES)
    if navigation_hits / len(words) > MAX_NAVIGATION_RATIO:
        return False

    return True


def _visible_length(element: Tag, hidden: Set[int]) -> int:
    text = "".join(
        string
        for string in element.find_all(string=True)
        if id(string) not in hidden and not isinstance(string, PreformattedString)
    )
    return len(text.strip())


def collapse_markup(markup: str, limit: int = MAX_EXTRACTED_LENGTH) -> str:
    """Collapse whitespace runs and cap the length of extracted markup."""
    if not markup:
        return ""
    content = _WHITESPACE.sub(" ", markup).strip()
    if len(content) > limit:
        content = content[:limit] + "..."
    return content


class ContentExtractor:
    """Article page fetcher and main-content extractor."""

    def __init__(
        self,
        user_agent: str,
        request_timeout: int = 30,
        proxy_url: Optional[str] = None,
        sanitizer: Optional[HTMLSanitizer] = None,
    ):
        self.user_agent = user_agent
        self.timeout = aiohttp.ClientTimeout(total=request_timeout)
        self.proxy_url = proxy_url
        self.sanitizer = sanitizer or HTMLSanitizer()
        self.parser = "html.parser"
        self.logger = get_logger_for_component("extractor")

    async def extract_from_url(
        self, page_url: str, session: aiohttp.ClientSession
    ) -> ExtractedContent:
        """Fetch a page and extract its image and main content.

        Raises:
            ExtractionError: On transport failure, non-200 status, or any failure while extracting
        """
        headers = {"User-Agent": self.user_agent, "Accept": PAGE_ACCEPT_HEADER}
        try:
            async with session.get(
                page_url, headers=headers, timeout=self.timeout, proxy=self.proxy_url
            ) as response:
                if response.status != 200:
                    raise ExtractionError(
                        f"HTTP error: {response.status} {response.reason or ''}".strip(),
                        page_url=page_url,
                        context={"status": response.status},
                    )
                body = await response.read()
                charset = response.charset or "utf-8"
        except asyncio.TimeoutError:
            raise ExtractionError(
                f"Page fetch timed out after {self.timeout.total}s", page_url=page_url
            )
        except aiohttp.ClientError as e:
            raise ExtractionError(f"Failed to fetch page: {e}", page_url=page_url)

        try:
            html = body.decode(charset, errors="replace")
        except LookupError:
            html = body.decode("utf-8", errors="replace")

        try:
            extracted = self.extract_from_html(html, page_url)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(
                f"Failed to extract content: {type(e).__name__}: {e}",
                page_url=page_url,
                error_code=ErrorCode.CONTENT_EXTRACTION_FAILED,
            )

        self.logger.debug(
            f"Extracted {len(extracted.full_content)} chars from {page_url}"
            f"{' with image' if extracted.image_url else ''}"
        )
        return extracted

    def extract_from_html(self, html: str, page_url: str) -> ExtractedContent:
        """Extract the lead image and sanitized main content from page markup."""
        if not html or not html.strip():
            raise ExtractionError(
                "Empty page body",
                page_url=page_url,
                error_code=ErrorCode.CONTENT_INVALID,
            )

        soup = BeautifulSoup(html, self.parser)

        image_url = self.find_main_image(soup, page_url)
        raw_content = self.find_main_content(soup, page_url)

        return ExtractedContent(
            image_url=image_url,
            full_content=self.sanitizer.clean_html(raw_content),
        )

    def find_main_image(self, soup: BeautifulSoup, page_url: str) -> str:
        """Social card image first, then the first image inside the content area."""
        image = ""
        for prop in IMAGE_META_PROPERTIES:
            image = self._find_meta_content(soup, prop)
            if image:
                break

        if not image:
            for selector in IMAGE_CONTAINER_SELECTORS:
                container = find_first(soup, selector)
                if container is None:
                    continue
                img = container.find("img", src=True)
                if img is not None and img["src"].strip():
                    image = img["src"].strip()
                    break

        return urljoin(page_url, image) if image else ""

    @staticmethod
    def _find_meta_content(soup: BeautifulSoup, prop: str) -> str:
        for meta in soup.find_all("meta"):
            # Either attribute names the card, property wins when both are set
            name = meta.get("property") or meta.get("name")
            content = (meta.get("content") or "").strip()
            if name == prop and content:
                return content
        return ""

    def find_main_content(self, soup: BeautifulSoup, page_url: str) -> str:
        """Locate the article body and return it as collapsed markup."""
        content = self._first_good_match(soup, get_platform_selectors(page_url))
        if content:
            return content

        declared_url = self._declared_url(soup)
        if declared_url:
            content = self._first_good_match(soup, get_platform_selectors(declared_url))
            if content:
                return content

        content = self._first_good_match(soup, GENERIC_CONTENT_SELECTORS)
        if content:
            return content

        return self._largest_content_block(soup)

    def _first_good_match(self, soup: BeautifulSoup, selectors: Sequence[str]) -> str:
        for selector in selectors:
            element = find_first(soup, selector)
            if element is None:
                continue
            markup = str(element)
            if is_good_content(markup, self.sanitizer):
                self.logger.debug(f"Content matched selector {selector!r}")
                return collapse_markup(markup)
        return ""

    @staticmethod
    def _declared_url(soup: BeautifulSoup) -> str:
        """URL from <base href> or <link rel="canonical">."""
        base = soup.find("base", href=True)
        if base is not None and base["href"].strip():
            return base["href"].strip()

        for link in soup.find_all("link", href=True):
            rel = link.get("rel") or []
            if isinstance(rel, str):
                rel = rel.split()
            if "canonical" in rel and link["href"].strip():
                return link["href"].strip()
        return ""

    def _largest_content_block(self, soup: BeautifulSoup) -> str:
        """Element with the most visible text, ignoring <head> and code-bearing tags."""
        hidden = {
            id(text)
            for element in soup.find_all(_HIDDEN_TEXT_TAGS)
            for text in element.find_all(string=True)
        }
        head = soup.head
        in_head = {id(node) for node in head.descendants} if head is not None else set()

        best: Optional[Tag] = None
        best_length = MIN_CONTENT_CHARS
        for element in soup.find_all(True):
            if (
                element.name in _DOCUMENT_ROOTS
                or element.name in _HIDDEN_TEXT_TAGS
                or id(element) in in_head
            ):
                continue
            length = _visible_length(element, hidden)
            if length > best_length:
                best, best_length = element, length

        if best is None:
            return ""
        self.logger.debug(f"Falling back to largest block <{best.name}> ({best_length} chars)")
        return collapse_markup(str(best))

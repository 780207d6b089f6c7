"""
Platform Selector Table
=======================

Known publishing platforms and the selectors, in priority order, that
locate their article bodies.
"""

from types import MappingProxyType
from typing import Optional, Tuple
from urllib.parse import urlparse

PLATFORM_SELECTORS = MappingProxyType(
    {
        "techcrunch.com": (
            ".wp-block-post-content",
            ".article-content",
            "[data-module='ArticleBody']",
            ".post-content",
        ),
        "medium.com": (
            "article section",
            "[data-testid='storyContent']",
            ".story-content",
            "article div[data-selectable-paragraph]",
        ),
        "theverge.com": (
            ".duet--article--article-body",
            "[data-testid='ArticleBodyWrapper']",
            ".c-entry-content",
            ".l-article-content",
        ),
        "arstechnica.com": (
            ".post-content",
            "[itemprop='articleBody']",
            ".article-content",
        ),
        "wired.com": (
            "[data-testid='BodyWrapper']",
            ".article__chunks",
            ".content-header + div",
            "[data-testid='ArticleBodyWrapper']",
        ),
        "engadget.com": (
            "[data-module='ArticleBody']",
            ".article-text",
            ".o-article_body",
        ),
        "techradar.com": (
            "[data-testid='article-body']",
            "#article-body",
            ".text-copy",
        ),
        "zdnet.com": (
            ".storyBody",
            "[data-module='ArticleBody']",
            ".content",
        ),
        "bbc.com": (
            "[data-component='text-block']",
            ".story-body__inner",
            "[data-testid='article-text']",
        ),
        "cnn.com": (
            ".zn-body__paragraph",
            "[data-testid='article-content']",
            ".l-container",
        ),
        "reuters.com": (
            "[data-testid='paragraph']",
            ".ArticleBodyWrapper",
            ".StandardArticleBody",
        ),
        "theguardian.com": (
            "[data-gu-name='body']",
            ".content__article-body",
            "#maincontent",
        ),
        "nytimes.com": (
            "section[name='articleBody']",
            ".StoryBodyCompanionColumn",
            "[data-testid='articleBody']",
        ),
        "washingtonpost.com": (
            "[data-testid='article-body']",
            ".article-body",
            "#article-body",
        ),
        "wsj.com": (
            "[data-module='ArticleBody']",
            ".wsj-snippet-body",
            ".article-content",
        ),
        "forbes.com": (
            ".article-body",
            "[data-testid='article-body']",
            ".body-container",
        ),
        "news.ycombinator.com": (
            ".comment",
            ".commtext",
        ),
        "reddit.com": (
            "[data-testid='post-content']",
            ".md",
            "[data-click-id='text']",
        ),
        "github.blog": (
            ".post-content",
            "[data-testid='article-body']",
            ".markdown-body",
        ),
        "stackoverflow.blog": (
            ".s-prose",
            ".post-content",
            "[itemprop='text']",
        ),
        "dev.to": (
            "[data-article-id] .crayons-article__body",
            ".article-body",
            "#article-body",
        ),
        "substack.com": (
            ".markup",
            "[data-testid='post-content']",
            ".post-content",
        ),
        "blogspot.com": (
            ".post-body",
            ".entry-content",
            "[itemprop='articleBody']",
        ),
        "wordpress.com": (
            ".entry-content",
            ".post-content",
            "[data-testid='post-content']",
        ),
        "mashable.com": (
            "[data-testid='article-body']",
            ".article-content",
            ".blueprint",
        ),
        "venturebeat.com": (
            ".article-content",
            "[data-module='ArticleBody']",
            ".the-content",
        ),
        "9to5mac.com": (
            ".post-content",
            "[data-testid='post-content']",
            ".entry-content",
        ),
        "9to5google.com": (
            ".post-content",
            "[data-testid='post-content']",
            ".entry-content",
        ),
    }
)

# Longest domain first so the most specific suffix wins
_DOMAINS_BY_SPECIFICITY = tuple(sorted(PLATFORM_SELECTORS, key=len, reverse=True))


def get_platform_selectors(url: Optional[str]) -> Tuple[str, ...]:
    """Selectors for the platform hosting ``url``, empty when unknown.

    Lookup order: exact hostname, hostname without ``www.``, then
    subdomains of a known platform (``blog.example.substack.com``).
    """
    if not url:
        return ()

    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return ()
    if not hostname:
        return ()

    if hostname in PLATFORM_SELECTORS:
        return PLATFORM_SELECTORS[hostname]

    if hostname.startswith("www."):
        bare = hostname[len("www."):]
        if bare in PLATFORM_SELECTORS:
            return PLATFORM_SELECTORS[bare]

    for domain in _DOMAINS_BY_SPECIFICITY:
        if hostname.endswith("." + domain):
            return PLATFORM_SELECTORS[domain]

    return ()

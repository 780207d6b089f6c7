"""
Unit Tests for HTML Sanitizer
=============================

Tests for pruning of navigation/ad/tracking blocks, the tag and attribute
allow-list, post-processing and the regex fallback.
"""

from unittest.mock import patch

import pytest
from bs4 import BeautifulSoup

from feedharvest.ingestion.html_sanitizer import (
    HTMLSanitizer,
    is_unwanted_element,
)


def _first_tag(markup):
    return BeautifulSoup(markup, "html.parser").find(True)


class TestUnwantedElements:
    """Detection of page furniture."""

    @pytest.mark.parametrize(
        "markup",
        [
            "<nav>Links</nav>",
            "<footer>Footer</footer>",
            "<iframe src='x'></iframe>",
            "<form><input></form>",
            '<div class="advertisement">Buy now</div>',
            '<div id="sidebar-left">Side</div>',
            '<div role="navigation">Links</div>',
            '<section class="newsletter-box">Join</section>',
            '<div class="cookie-consent">Accept</div>',
            '<ul class="breadcrumb"><li>Home</li></ul>',
            '<div data-tracking-id="abc">Pixel</div>',
            '<span data-ga-event="click">x</span>',
        ],
    )
    def test_unwanted(self, markup):
        assert is_unwanted_element(_first_tag(markup))

    @pytest.mark.parametrize(
        "markup",
        [
            "<p>Body text</p>",
            '<div class="article-body">Story</div>',
            '<div id="story" data-id="1">Story</div>',
            '<img src="a.jpg" alt="A">',
        ],
    )
    def test_content_elements_are_kept(self, markup):
        assert not is_unwanted_element(_first_tag(markup))


class TestHTMLSanitizer:
    """Full sanitization pipeline."""

    def setup_method(self):
        self.sanitizer = HTMLSanitizer()

    def test_empty_input(self):
        assert self.sanitizer.clean_html(None) == ""
        assert self.sanitizer.clean_html("   ") == ""

    def test_removal_tags_dropped_with_content(self):
        html = '<div class="story"><p>Hello <b>world</b></p><script>alert(1)</script><nav>Menu</nav></div>'
        assert self.sanitizer.clean_html(html) == "<div><p>Hello <b>world</b></p></div>"

    def test_ad_blocks_removed(self):
        html = '<div class="advertisement">Buy</div><p>Story text</p><aside>Related</aside>'
        assert self.sanitizer.clean_html(html) == "<p>Story text</p>"

    def test_tracking_blocks_removed(self):
        html = '<div data-tracking-id="1"><p>Tracked</p></div><p>Story</p>'
        assert self.sanitizer.clean_html(html) == "<p>Story</p>"

    def test_disallowed_tags_unwrapped(self):
        html = "<section><p>Text in <font>section</font></p></section>"
        assert self.sanitizer.clean_html(html) == "<p>Text in section</p>"

    def test_attributes_stripped(self):
        html = '<p class="lead" style="color:red" onclick="x()">Text</p>'
        assert self.sanitizer.clean_html(html) == "<p>Text</p>"

    def test_link_keeps_only_safe_href(self):
        html = '<p><a href="https://example.com/x" target="_blank" rel="nofollow">Safe</a></p>'
        assert self.sanitizer.clean_html(html) == '<p><a href="https://example.com/x">Safe</a></p>'

    def test_javascript_and_data_urls_dropped(self):
        html = '<p><a href="javascript:alert(1)">Bad</a><img src="data:image/png;base64,AAAA" alt="x"></p>'
        cleaned = BeautifulSoup(self.sanitizer.clean_html(html), "html.parser")
        assert not cleaned.a.has_attr("href")
        assert not cleaned.img.has_attr("src")
        assert cleaned.img["alt"] == "x"

    def test_image_attributes(self):
        html = '<p><img src="https://example.com/a.jpg" alt="A" title="T" width="10" class="hero"></p>'
        cleaned = BeautifulSoup(self.sanitizer.clean_html(html), "html.parser")
        assert cleaned.img.attrs == {"src": "https://example.com/a.jpg", "alt": "A", "title": "T"}

    def test_comments_removed(self):
        assert self.sanitizer.clean_html("<p>Hi</p><!-- secret -->") == "<p>Hi</p>"

    def test_empty_shells_removed(self):
        html = "<div><span> </span></div><p>Text</p><div></div>"
        assert self.sanitizer.clean_html(html) == "<p>Text</p>"

    def test_whitespace_collapsed(self):
        assert self.sanitizer.clean_html("<p>Hello\n\n    world</p>") == "<p>Hello world</p>"

    def test_repeated_breaks_collapsed(self):
        assert self.sanitizer.clean_html("<p>a<br><br><br><br>b</p>") == "<p>a<br><br>b</p>"

    def test_length_cap(self):
        sanitizer = HTMLSanitizer(max_length=20)
        cleaned = sanitizer.clean_html("<p>" + "x" * 100 + "</p>")
        assert len(cleaned) == 23
        assert cleaned.endswith("...")

    def test_sanitizing_twice_is_stable(self):
        html = '<div class="story"><p>One</p><div class="share-tools">Share</div><p>Two</p></div>'
        once = self.sanitizer.clean_html(html)
        assert self.sanitizer.clean_html(once) == once

    def test_extract_text_skips_script_and_style(self):
        html = "<p>Hi<script>x()</script><style>.a{}</style> there</p>"
        assert self.sanitizer.extract_text(html) == "Hi there"


class TestBasicCleanFallback:
    """Regex cleanup used when the parser rejects markup."""

    def setup_method(self):
        self.sanitizer = HTMLSanitizer()

    def test_basic_clean(self):
        html = (
            '<div class="x"><script>bad()</script><nav>Menu</nav>'
            '<p onclick="y">Text</p><a href="javascript:z">L</a><custom>c</custom></div>'
        )
        assert self.sanitizer._basic_clean(html) == "<div><p>Text</p><a>L</a>c</div>"

    def test_basic_clean_keeps_allowed_attributes(self):
        html = "<p><a href='https://example.com' class='x'>Link</a></p>"
        assert self.sanitizer._basic_clean(html) == '<p><a href="https://example.com">Link</a></p>'

    def test_parser_failure_uses_fallback(self):
        with patch(
            "feedharvest.ingestion.html_sanitizer.BeautifulSoup",
            side_effect=Exception("parser exploded"),
        ):
            cleaned = self.sanitizer.clean_html("<p>Text</p><script>x()</script>")
        assert cleaned == "<p>Text</p>"

    def test_cleanup_failure_uses_fallback(self):
        with patch.object(HTMLSanitizer, "_apply_allow_list", side_effect=RuntimeError("boom")):
            cleaned = self.sanitizer.clean_html("<p>Text</p><script>x()</script>")
        assert cleaned == "<p>Text</p>"


class TestDeepNesting:
    """Pages nested deeper than the interpreter's recursion limit."""

    DEPTH = 1500

    def test_deeply_nested_markup_is_cleaned(self):
        html = (
            "<div>" * self.DEPTH
            + '<p>Deep text</p><div class="share-bar">Share</div>'
            + "</div>" * self.DEPTH
        )

        cleaned = HTMLSanitizer().clean_html(html)

        assert "<p>Deep text</p>" in cleaned
        assert "Share" not in cleaned

    def test_deeply_nested_unwanted_block_is_pruned(self):
        html = (
            "<p>Kept</p><aside>"
            + "<div>" * self.DEPTH
            + "Sidebar"
            + "</div>" * self.DEPTH
            + "</aside>"
        )

        assert HTMLSanitizer().clean_html(html) == "<p>Kept</p>"

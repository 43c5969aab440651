from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, ParserRejectedMarkup
from lxml import etree
from markdownify import markdownify as md
from readability import Document
from readability.readability import Unparseable


LOGGER = logging.getLogger(__name__)

_NO_TITLE = "[no-title]"
_EXCERPT_CHARS = 200

# Whitespace plus zero-width characters (ZWSP, ZWNJ, ZWJ, BOM).
_WHITESPACE_RE = re.compile("[\\s\u200b-\u200d\ufeff]+")


@dataclass(frozen=True)
class Article:
    title: str | None
    byline: str | None
    dir: str | None
    lang: str | None
    content: str
    text_content: str
    length: int
    excerpt: str | None
    site_name: str | None


def clean_string(text: str) -> str:
    """Collapse all whitespace (and zero-width characters) to single spaces."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def sanitize_markdown(markdown: str) -> str:
    """
    Cleans up Markdown by removing excessive blank lines and trailing whitespace.

    Leading indentation is kept: it carries meaning for nested lists and code blocks.
    """
    lines = [line.rstrip() for line in (markdown or "").replace("\r\n", "\n").split("\n")]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _meta_content(soup: BeautifulSoup, *selectors: dict[str, str]) -> str | None:
    for attrs in selectors:
        tag = soup.find("meta", attrs=attrs)
        if tag is None:
            continue
        value = clean_string(str(tag.get("content") or ""))
        if value:
            return value
    return None


def _html_attr(soup: BeautifulSoup, name: str) -> str | None:
    root = soup.find("html")
    if root is None:
        return None
    value = str(root.get(name) or "").strip()
    return value or None


def extract_article(html: str) -> Article | None:
    """
    Extract the main readable content of an HTML document.

    Returns None when the document cannot be parsed or has no readable body.
    """
    if not (html or "").strip():
        return None

    try:
        doc = Document(html)
        content = doc.summary(html_partial=True)
        title = doc.short_title()
    except (Unparseable, etree.LxmlError, ValueError) as exc:
        LOGGER.debug("Readability could not parse document: %s", exc)
        return None

    try:
        body = BeautifulSoup(content or "", "html.parser")
        page = BeautifulSoup(html, "html.parser")
    except ParserRejectedMarkup as exc:
        LOGGER.debug("BeautifulSoup rejected document: %s", exc)
        return None

    text_content = body.get_text("\n", strip=True)
    if not text_content:
        return None

    if not title or title == _NO_TITLE:
        title = _meta_content(page, {"property": "og:title"}, {"name": "twitter:title"})

    excerpt = _meta_content(page, {"property": "og:description"}, {"name": "description"})
    if excerpt is None:
        first_paragraph = body.find("p")
        if first_paragraph is not None:
            excerpt = clean_string(first_paragraph.get_text(" ")) or None
    if excerpt is not None and len(excerpt) > _EXCERPT_CHARS:
        excerpt = excerpt[:_EXCERPT_CHARS].rstrip() + "…"

    return Article(
        title=clean_string(title or "") or None,
        byline=_meta_content(page, {"name": "author"}, {"property": "article:author"}),
        dir=_html_attr(page, "dir"),
        lang=_html_attr(page, "lang"),
        content=content,
        text_content=text_content,
        length=len(text_content),
        excerpt=excerpt,
        site_name=_meta_content(page, {"property": "og:site_name"}, {"name": "application-name"}),
    )


def to_markdown(html_fragment: str) -> str:
    """Convert an HTML fragment (typically an extracted article) to Markdown."""
    soup = BeautifulSoup(html_fragment or "", "html.parser")

    # Remove elements whose text must never leak into the output.
    for element in soup(["script", "style", "noscript", "template"]):
        element.decompose()

    markdown_text = md(str(soup), heading_style="ATX", bullets="-")
    return sanitize_markdown(markdown_text)

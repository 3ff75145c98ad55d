# =============================================================================
# HTML Text Extractor — BeautifulSoup
# =============================================================================
#
# Turns a fetched HTML page into a title and one line of normalised body
# text ready for chunking.
#
# ALGORITHM:
# 1. Drop non-content elements (script, style, nav, footer, noscript)
# 2. Title = first <title>, stripped ("" when absent)
# 3. Body = <main> when the page marks one, else <body>, else everything
# 4. Collapse every whitespace run (newlines included) to a single space
#
# There are no error cases: malformed markup is parsed leniently, and the
# caller substitutes the URL when the title comes back empty.
# =============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

NON_CONTENT_TAGS = ("script", "style", "nav", "footer", "noscript")

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class ExtractedPage:
    """Readable content of one page."""

    title: str
    text: str


def extract_text(html: str) -> ExtractedPage:
    """
    Extract the title and normalised body text from raw HTML.

    Args:
        html: Raw markup as fetched.

    Returns:
        ExtractedPage with stripped title and whitespace-collapsed text.
    """
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(list(NON_CONTENT_TAGS)):
        tag.decompose()

    title_tag = soup.find("title")
    title = _normalise(title_tag.get_text()) if title_tag else ""

    region = soup.find("main") or soup.find("body") or soup
    text = _normalise(region.get_text(separator=" "))

    logger.debug(
        "Extracted title=%r, %d chars (region=%s)",
        title, len(text), getattr(region, "name", None),
    )
    return ExtractedPage(title=title, text=text)


def _normalise(raw: str) -> str:
    return _WHITESPACE_RE.sub(" ", raw).strip()

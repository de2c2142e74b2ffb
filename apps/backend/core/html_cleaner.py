"""
HTML cleaning and Markdown conversion.

Strips scripts, styles, navigation chrome and noisy attributes from job pages
to cut token count before AI processing. JSON-LD blocks are pulled out first
and prepended as plain text so schema.org JobPosting data survives the
removal of <head>.
"""

import html as html_lib
import logging

from bs4 import BeautifulSoup, Comment
from markdownify import markdownify

logger = logging.getLogger(__name__)

# Removed including contents
REMOVE_ELEMENTS = [
    "style", "noscript", "iframe", "svg", "canvas", "video", "audio", "map",
    "object", "embed", "head", "header", "footer", "nav", "aside", "form",
    "link",
    "code",  # hidden JSON config blobs
]

REMOVE_ATTRIBUTES = {
    "style", "class", "id", "onclick", "onload", "onerror", "onmouseover",
    "onmouseout", "onfocus", "onblur", "nonce", "crossorigin", "integrity",
}

MAX_CONTENT_LENGTH = 180_000
TRUNCATION_MARKER = "\n\n[Content truncated...]"


def extract_jsonld_blocks(soup: BeautifulSoup) -> list:
    """Return the raw text of every JSON-LD script, entity-decoded."""
    blocks = []
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string if script.string is not None else script.get_text()
        if raw and raw.strip():
            blocks.append(html_lib.unescape(raw.strip()))
    return blocks


def clean(html: str) -> str:
    """
    Clean HTML by removing irrelevant elements and attributes.

    Args:
        html: Raw HTML string

    Returns:
        Cleaned body HTML, with JSON-LD content prepended as text
    """
    soup = BeautifulSoup(html, "html.parser")

    # JSON-LD often lives in <head>, which is removed below
    jsonld_blocks = extract_jsonld_blocks(soup)

    for tag in soup.find_all(REMOVE_ELEMENTS):
        tag.extract()

    for script in soup.find_all("script"):
        script.extract()

    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    for element in soup.find_all(True):
        element.attrs = {
            key: value
            for key, value in element.attrs.items()
            if key not in REMOVE_ATTRIBUTES and not key.startswith("data-")
        }

    body = soup.body.decode_contents() if soup.body else str(soup)

    if jsonld_blocks:
        return "\n\n".join(jsonld_blocks) + "\n\n" + body
    return body


def to_markdown(html: str) -> str:
    """
    Convert HTML to compact Markdown for AI consumption.

    Truncated to MAX_CONTENT_LENGTH characters.
    """
    markdown = markdownify(clean(html), heading_style="ATX").strip()

    if len(markdown) > MAX_CONTENT_LENGTH:
        logger.debug(f"[html_cleaner] Truncating markdown from {len(markdown)} chars")
        return markdown[:MAX_CONTENT_LENGTH] + TRUNCATION_MARKER
    return markdown

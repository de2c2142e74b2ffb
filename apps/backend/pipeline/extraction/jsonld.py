"""
JSON-LD discovery and path lookup.

Finds the schema.org JobPosting block on a page and reads values out of it
with JSONPath expressions such as "$.hiringOrganization.name" or
"$.jobLocation[0].address.addressLocality".
"""

import json
import logging
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup
from jsonpath_ng.ext import parse

logger = logging.getLogger(__name__)

JSONLD_SELECTOR = "script[type='application/ld+json']"


def is_job_posting(item: Any) -> bool:
    """Check if a JSON-LD item is a JobPosting (string or list @type)."""
    if not isinstance(item, dict):
        return False
    item_type = item.get("@type", "")
    if isinstance(item_type, str):
        return item_type == "JobPosting"
    if isinstance(item_type, list):
        return any(t == "JobPosting" for t in item_type)
    return False


def _flatten(data: Any) -> List[Dict]:
    """Flatten a JSON-LD document into candidate items."""
    if isinstance(data, list):
        items = []
        for element in data:
            items.extend(_flatten(element))
        return items
    if isinstance(data, dict):
        items = [data]
        if isinstance(data.get("@graph"), list):
            items.extend(item for item in data["@graph"] if isinstance(item, dict))
        return items
    return []


def load_blocks(soup: BeautifulSoup) -> List[Any]:
    """Parse every JSON-LD script on the page, skipping invalid ones."""
    blocks = []
    for script in soup.select(JSONLD_SELECTOR):
        raw = script.string if script.string is not None else script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            blocks.append(json.loads(raw))
        except json.JSONDecodeError as e:
            logger.debug(f"[jsonld] Failed to parse JSON-LD block: {e}")
    return blocks


def find_job_posting(soup: BeautifulSoup) -> Optional[Any]:
    """
    Pick the JSON-LD block to extract from.

    Prefers a JobPosting (top level, in a list, or inside @graph); otherwise
    the first parsed block.
    """
    blocks = load_blocks(soup)
    for block in blocks:
        for item in _flatten(block):
            if is_job_posting(item):
                return item
    return blocks[0] if blocks else None


def get_path(data: Any, path: str) -> Optional[Any]:
    """
    Resolve a JSONPath expression against data.

    Returns the first match's value, or None when the path is invalid or
    matches nothing.
    """
    expression = path.strip()
    if not expression.startswith("$"):
        expression = "$." + expression.lstrip(".")
    if expression == "$":
        return data

    try:
        matches = parse(expression).find(data)
    except Exception as e:
        logger.debug(f"[jsonld] Invalid JSONPath {path!r}: {e}")
        return None

    return matches[0].value if matches else None

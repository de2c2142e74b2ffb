"""
Match pages against stored extraction configs.

A config matches only when it has at least one pattern and every pattern
matches. When several configs match, the most specific (most patterns) wins.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from pipeline.extraction.config import ExtractionConfig, MatchPattern, MatchPatternType, compute_match_hash
from pipeline.extraction.jsonld import JSONLD_SELECTOR

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    config: ExtractionConfig
    matched_patterns: int
    total_patterns: int

    @property
    def is_full_match(self) -> bool:
        return self.total_patterns > 0 and self.matched_patterns == self.total_patterns


def _pattern_matches(soup: BeautifulSoup, url: str, html: str, pattern: MatchPattern) -> bool:
    if pattern.pattern_type == MatchPatternType.CSS_EXISTS:
        if not pattern.selector:
            return False
        try:
            elements = soup.select(pattern.selector)
        except Exception as e:
            # soupsieve rejects some selectors the AI produces
            logger.debug(f"[config_matcher] Bad selector {pattern.selector!r}: {e}")
            return False
        if not elements:
            return False
        if pattern.content_contains:
            return any(pattern.content_contains in el.decode_contents() for el in elements)
        return True

    if pattern.pattern_type == MatchPatternType.URL_PATTERN:
        if not pattern.pattern:
            return False
        try:
            return re.search(pattern.pattern, url) is not None
        except re.error:
            return False

    if pattern.pattern_type == MatchPatternType.CONTENT_CONTAINS:
        return bool(pattern.content_contains) and pattern.content_contains in html

    return False


def _match_config(soup: BeautifulSoup, url: str, html: str, config: ExtractionConfig) -> MatchResult:
    matched = sum(1 for p in config.match_patterns if _pattern_matches(soup, url, html, p))
    return MatchResult(config=config, matched_patterns=matched, total_patterns=len(config.match_patterns))


def find_all_matches(html: str, url: str, configs: List[ExtractionConfig]) -> List[MatchResult]:
    """All fully matching configs, most specific first."""
    soup = BeautifulSoup(html, "html.parser")
    results = [_match_config(soup, url, html, config) for config in configs]
    full = [r for r in results if r.is_full_match]
    return sorted(full, key=lambda r: -r.matched_patterns)


def find_match(html: str, url: str, configs: List[ExtractionConfig]) -> Optional[ExtractionConfig]:
    """Best matching config for a page, if any config fully matches."""
    matches = find_all_matches(html, url, configs)
    return matches[0].config if matches else None


def page_signature(html: str, url: str) -> List[MatchPattern]:
    """
    Structural signature of a page.

    The host of the URL plus, when present, a JSON-LD JobPosting block. Pages
    with the same signature share a layout and therefore an extraction config.
    """
    patterns = []

    host = (urlsplit(url).hostname or "").lower()
    if host:
        patterns.append(MatchPattern.url_pattern(f"^https?://{re.escape(host)}(?:[:/?#]|$)"))

    soup = BeautifulSoup(html, "html.parser")
    for script in soup.select(JSONLD_SELECTOR):
        if "JobPosting" in script.decode_contents():
            patterns.append(MatchPattern.css_exists(JSONLD_SELECTOR, content_contains="JobPosting"))
            break

    return patterns


def signature_hash(html: str, url: str) -> str:
    return compute_match_hash(page_signature(html, url))

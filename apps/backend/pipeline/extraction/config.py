"""
Extraction config model.

An extraction config pairs match patterns (how to recognize a page layout)
with per-field extraction rules (how to pull each field out of it). Configs
are content-addressed by match_hash, a SHA-256 over the canonical JSON of the
sorted patterns.
"""

import hashlib
import json
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class MatchPatternType(str, Enum):
    CSS_EXISTS = "css_exists"
    URL_PATTERN = "url_pattern"
    CONTENT_CONTAINS = "content_contains"


class ExtractionSource(str, Enum):
    JSONLD = "jsonld"
    CSS = "css"
    META = "meta"
    REGEX = "regex"


class Transform(str, Enum):
    HTML_DECODE = "html_decode"
    INNER_TEXT = "inner_text"
    PARSE_NUMBER = "parse_number"


class MatchPattern(BaseModel):
    """
    One page-recognition pattern.

    css_exists: selector matches an element (optionally one whose HTML
    contains content_contains). url_pattern: regex searched in the URL.
    content_contains: raw HTML contains the text.
    """
    pattern_type: MatchPatternType
    selector: Optional[str] = None
    pattern: Optional[str] = None
    content_contains: Optional[str] = None

    @classmethod
    def css_exists(cls, selector: str, content_contains: Optional[str] = None) -> "MatchPattern":
        return cls(pattern_type=MatchPatternType.CSS_EXISTS, selector=selector, content_contains=content_contains)

    @classmethod
    def url_pattern(cls, regex: str) -> "MatchPattern":
        return cls(pattern_type=MatchPatternType.URL_PATTERN, pattern=regex)

    @classmethod
    def contains(cls, text: str) -> "MatchPattern":
        return cls(pattern_type=MatchPatternType.CONTENT_CONTAINS, content_contains=text)


class ExtractionRule(BaseModel):
    source: ExtractionSource
    path: Optional[str] = None
    selector: Optional[str] = None
    name: Optional[str] = None
    pattern: Optional[str] = None
    transforms: List[Transform] = Field(default_factory=list)

    @classmethod
    def jsonld(cls, path: str, transforms: Optional[List[Transform]] = None) -> "ExtractionRule":
        return cls(source=ExtractionSource.JSONLD, path=path, transforms=transforms or [])

    @classmethod
    def css(cls, selector: str, transforms: Optional[List[Transform]] = None) -> "ExtractionRule":
        return cls(source=ExtractionSource.CSS, selector=selector, transforms=transforms or [])

    @classmethod
    def meta(cls, name: str, transforms: Optional[List[Transform]] = None) -> "ExtractionRule":
        return cls(source=ExtractionSource.META, name=name, transforms=transforms or [])

    @classmethod
    def regex(cls, selector: str, pattern: str, transforms: Optional[List[Transform]] = None) -> "ExtractionRule":
        return cls(source=ExtractionSource.REGEX, selector=selector, pattern=pattern, transforms=transforms or [])


def compute_match_hash(patterns: List[MatchPattern]) -> str:
    """Order-independent SHA-256 hex digest of a pattern set."""
    ordered = sorted(
        patterns,
        key=lambda p: (p.pattern_type.value, p.selector or "", p.pattern or "", p.content_contains or ""),
    )
    canonical = json.dumps(
        [p.model_dump(mode="json") for p in ordered],
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ExtractionConfig(BaseModel):
    id: Optional[str] = None
    name: str
    version: int = 1
    match_patterns: List[MatchPattern]
    match_hash: str
    extract_rules: Dict[str, List[ExtractionRule]]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def create(
        cls,
        name: str,
        match_patterns: List[MatchPattern],
        extract_rules: Dict[str, List[ExtractionRule]],
    ) -> "ExtractionConfig":
        return cls(
            name=name,
            match_patterns=match_patterns,
            match_hash=compute_match_hash(match_patterns),
            extract_rules=extract_rules,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ExtractionConfig":
        """Build from an extraction_configs row (JSONB columns may arrive as text)."""
        data = dict(row)
        for column in ("match_patterns", "extract_rules"):
            if isinstance(data.get(column), str):
                data[column] = json.loads(data[column])
        for column in ("id", "created_at", "updated_at"):
            if data.get(column) is not None:
                data[column] = str(data[column])
        return cls.model_validate(data)

    def to_row(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "match_patterns": json.dumps([p.model_dump(mode="json") for p in self.match_patterns]),
            "match_hash": self.match_hash,
            "extract_rules": json.dumps({
                field: [r.model_dump(mode="json") for r in rules]
                for field, rules in self.extract_rules.items()
            }),
        }

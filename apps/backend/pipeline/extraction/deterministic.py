"""
Deterministic extractor.

Applies an ExtractionConfig's rules to a page without any AI call. Each field
tries its rules in order and keeps the first non-empty value; rule failures
are collected per field for debugging.
"""

import html as html_lib
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from pipeline.completion import CompletionScorer, CompletionState, ScoringResult
from pipeline.extraction.config import ExtractionConfig, ExtractionRule, ExtractionSource, Transform
from pipeline.extraction.jsonld import find_job_posting, get_path
from pipeline.models import ExtractedJobData

logger = logging.getLogger(__name__)

SCORED_FIELDS = (
    "title", "company_name", "description", "location", "salary_min", "salary_max",
    "qualifications", "responsibilities", "benefits", "job_type", "experience_level",
)


class RuleFailure(Exception):
    pass


@dataclass
class ExtractionResult:
    data: ExtractedJobData
    scoring_result: ScoringResult
    failed_rules: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def completion_state(self) -> CompletionState:
        return self.scoring_result.state


def _element_text(element) -> str:
    return " ".join(element.get_text(" ").split())


def _select_first(soup: BeautifulSoup, selector: str):
    try:
        return soup.select_one(selector)
    except Exception as e:
        raise RuleFailure(f"Invalid selector '{selector}': {e}")


def _json_to_string(value: Any) -> str:
    if value is None:
        raise RuleFailure("JSONPath returned null")
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return ", ".join(v if isinstance(v, str) else json.dumps(v) for v in value)
    return json.dumps(value)


def _apply_transform(value: str, transform: Transform) -> str:
    if transform == Transform.HTML_DECODE:
        return html_lib.unescape(value)
    if transform == Transform.INNER_TEXT:
        return _element_text(BeautifulSoup(value, "html.parser"))
    if transform == Transform.PARSE_NUMBER:
        digits = re.sub(r"[^0-9.]", "", value)
        if not digits:
            raise RuleFailure("No numeric value found")
        return digits
    return value


def _apply_rule(soup: BeautifulSoup, jsonld: Optional[Any], rule: ExtractionRule) -> str:
    if rule.source == ExtractionSource.JSONLD:
        if not rule.path:
            raise RuleFailure("No JSONPath specified")
        if jsonld is None:
            raise RuleFailure("No JSON-LD data found")
        value = get_path(jsonld, rule.path)
        if value is None:
            raise RuleFailure(f"JSONPath '{rule.path}' matched nothing")
        raw = _json_to_string(value)

    elif rule.source == ExtractionSource.CSS:
        if not rule.selector:
            raise RuleFailure("No CSS selector specified")
        element = _select_first(soup, rule.selector)
        if element is None:
            raise RuleFailure(f"Selector '{rule.selector}' matched no elements")
        raw = _element_text(element)

    elif rule.source == ExtractionSource.META:
        if not rule.name:
            raise RuleFailure("No meta tag name specified")
        meta = soup.find("meta", attrs={"name": rule.name}) or soup.find("meta", attrs={"property": rule.name})
        if meta is None or meta.get("content") is None:
            raise RuleFailure(f"Meta tag '{rule.name}' not found")
        raw = meta["content"]

    elif rule.source == ExtractionSource.REGEX:
        if not rule.selector:
            raise RuleFailure("No selector specified for regex extraction")
        if not rule.pattern:
            raise RuleFailure("No regex pattern specified")
        element = _select_first(soup, rule.selector)
        if element is None:
            raise RuleFailure(f"Selector '{rule.selector}' matched no elements")
        try:
            match = re.search(rule.pattern, _element_text(element))
        except re.error as e:
            raise RuleFailure(f"Invalid regex '{rule.pattern}': {e}")
        if not match or not match.groups() or match.group(1) is None:
            raise RuleFailure(f"Regex '{rule.pattern}' did not match")
        raw = match.group(1)

    else:
        raise RuleFailure(f"Unsupported source: {rule.source}")

    for transform in rule.transforms:
        raw = _apply_transform(raw, transform)
    return raw


def _try_rules(soup: BeautifulSoup, jsonld: Optional[Any], rules: List[ExtractionRule]) -> Tuple[Optional[str], List[str]]:
    errors = []
    for rule in rules:
        try:
            value = _apply_rule(soup, jsonld, rule)
        except RuleFailure as e:
            errors.append(f"{rule.source.value}: {e}")
            continue
        if value.strip():
            return value, []
        errors.append(f"{rule.source.value}: returned empty value")
    return None, errors


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        return None


def _split_list(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [part.strip() for part in value.split(",")]


def _parse_remote(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    lowered = value.lower()
    return lowered in ("true", "telecommute") or "remote" in lowered


def build_job_data(fields: Dict[str, str]) -> ExtractedJobData:
    return ExtractedJobData(
        title=fields.get("title", "Unknown Title"),
        company_name=fields.get("company_name"),
        description=fields.get("description"),
        location=fields.get("location"),
        job_type=fields.get("job_type"),
        experience_level=fields.get("experience_level"),
        education_level=fields.get("education_level"),
        salary_min=_parse_int(fields.get("salary_min")),
        salary_max=_parse_int(fields.get("salary_max")),
        salary_currency=fields.get("salary_currency"),
        qualifications=_split_list(fields.get("qualifications")),
        preferred_qualifications=_split_list(fields.get("preferred_qualifications")),
        responsibilities=_split_list(fields.get("responsibilities")),
        benefits=_split_list(fields.get("benefits")),
        category=fields.get("category"),
        application_url=fields.get("application_url"),
        is_remote=_parse_remote(fields.get("is_remote")),
        posted_date=fields.get("posted_date"),
        closing_date=fields.get("closing_date"),
    )


def extract(html: str, url: str, config: ExtractionConfig) -> ExtractionResult:
    """
    Extract job data from a page with the given config.

    Args:
        html: Page HTML
        url: Page URL
        config: Extraction config to apply

    Returns:
        ExtractionResult with data, weighted score and per-field rule failures
    """
    soup = BeautifulSoup(html, "html.parser")
    jsonld = find_job_posting(soup)

    extracted: Dict[str, str] = {}
    failed_rules: Dict[str, List[str]] = {}
    for field_name, rules in config.extract_rules.items():
        value, errors = _try_rules(soup, jsonld, rules)
        if value is not None:
            extracted[field_name] = value
        elif errors:
            failed_rules[field_name] = errors

    data = build_job_data(extracted)
    scoring = CompletionScorer.score({name: extracted.get(name) for name in SCORED_FIELDS})

    logger.debug(f"[deterministic] {config.name} on {url}: {scoring.summary}")
    return ExtractionResult(data=data, scoring_result=scoring, failed_rules=failed_rules)

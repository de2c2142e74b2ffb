"""
AI-generated extraction configs.

The model looks at a page (its JSON-LD, meta tags and a content preview) and
writes an extraction config. Each candidate is tested with the deterministic
extractor; when the result is not good enough the model gets feedback on the
missing fields and tries again, up to max_attempts. The best-scoring config
is returned.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from bs4 import BeautifulSoup
from pydantic import AliasChoices, BaseModel, Field

from app.ai_service import AIGatewayClient, AIServiceError
from pipeline.completion import CompletionState
from pipeline.extraction import deterministic
from pipeline.extraction.config import (
    ExtractionConfig,
    ExtractionRule,
    ExtractionSource,
    MatchPattern,
    MatchPatternType,
    Transform,
)
from pipeline.extraction.jsonld import JSONLD_SELECTOR

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class GeneratedMatchPattern(BaseModel):
    pattern_type: str = Field(validation_alias=AliasChoices("pattern_type", "patternType", "type"))
    selector: Optional[str] = None
    pattern: Optional[str] = None
    content_contains: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("content_contains", "contentContains")
    )


class GeneratedRule(BaseModel):
    source: str
    path: Optional[str] = None
    selector: Optional[str] = None
    name: Optional[str] = None
    pattern: Optional[str] = None
    transforms: Optional[List[str]] = None


class GeneratedConfig(BaseModel):
    """Loosely typed config as written by the model (enums are plain strings)."""
    name: str
    match_patterns: List[GeneratedMatchPattern] = Field(
        default_factory=list, validation_alias=AliasChoices("match_patterns", "matchPatterns")
    )
    extract_rules: Dict[str, List[GeneratedRule]] = Field(
        default_factory=dict, validation_alias=AliasChoices("extract_rules", "extractRules")
    )


SYSTEM_PROMPT = """You generate extraction configs for job posting pages. The config will be used to
extract job data deterministically, without AI, from this page and others with the same layout.

OUTPUT FORMAT - a JSON object:
{
  "name": "Site Name - Extraction Type",
  "match_patterns": [...],
  "extract_rules": {...}
}

MATCH PATTERNS - identify the pages this config applies to:
- {"pattern_type": "css_exists", "selector": "script[type='application/ld+json']", "content_contains": "JobPosting"}
- {"pattern_type": "url_pattern", "pattern": "^https://jobs\\\\.example\\\\.com/"}
- {"pattern_type": "content_contains", "content_contains": "Apply Now"}

EXTRACT RULES - map field names to rules, tried in order:
{
  "title": [
    {"source": "jsonld", "path": "$.title"},
    {"source": "css", "selector": "h1.job-title"}
  ],
  "company_name": [
    {"source": "jsonld", "path": "$.hiringOrganization.name"},
    {"source": "meta", "name": "og:site_name"}
  ],
  "salary_min": [
    {"source": "jsonld", "path": "$.baseSalary.value.minValue"},
    {"source": "css", "selector": ".salary", "transforms": ["parse_number"]}
  ]
}

SOURCES (in preference order):
1. jsonld - JSONPath into the JobPosting JSON-LD block, e.g. $.title, $.description,
   $.hiringOrganization.name, $.jobLocation.address.addressLocality,
   $.baseSalary.value.minValue, $.baseSalary.value.maxValue
2. css - text of the first element matching a CSS selector
3. meta - content of <meta name="X"> or <meta property="X">
4. regex - regex with one capture group applied to the text of a CSS-selected element

TRANSFORMS (optional, applied in order after extraction):
- html_decode: decode entities such as &amp;
- inner_text: strip HTML tags
- parse_number: keep only the numeric value

FIELDS:
- title, company_name, description (REQUIRED)
- location, salary_min, salary_max, qualifications, responsibilities, benefits,
  job_type, experience_level, application_url, is_remote

RULES:
1. Always use JSON-LD first when a JobPosting block exists
2. Give several rules per field as fallbacks
3. JSONPath expressions start with $: $.title, not title
4. Prefer specific CSS selectors to avoid wrong matches
5. Name configs descriptively: "Acme Careers - JSON-LD", not "Config 1"
"""

_PATTERN_TYPES = {
    "css_exists": MatchPatternType.CSS_EXISTS,
    "cssexists": MatchPatternType.CSS_EXISTS,
    "url_pattern": MatchPatternType.URL_PATTERN,
    "urlpattern": MatchPatternType.URL_PATTERN,
    "content_contains": MatchPatternType.CONTENT_CONTAINS,
    "contentcontains": MatchPatternType.CONTENT_CONTAINS,
}

_SOURCES = {
    "jsonld": ExtractionSource.JSONLD,
    "json_ld": ExtractionSource.JSONLD,
    "ld+json": ExtractionSource.JSONLD,
    "css": ExtractionSource.CSS,
    "meta": ExtractionSource.META,
    "regex": ExtractionSource.REGEX,
}

_TRANSFORMS = {
    "html_decode": Transform.HTML_DECODE,
    "htmldecode": Transform.HTML_DECODE,
    "decode": Transform.HTML_DECODE,
    "inner_text": Transform.INNER_TEXT,
    "innertext": Transform.INNER_TEXT,
    "text": Transform.INNER_TEXT,
    "parse_number": Transform.PARSE_NUMBER,
    "parsenumber": Transform.PARSE_NUMBER,
    "number": Transform.PARSE_NUMBER,
}


def _key(value: str) -> str:
    return value.strip().lower().replace("-", "_").replace(" ", "")


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name.strip()).lower()


def to_extraction_config(generated: GeneratedConfig) -> ExtractionConfig:
    """
    Convert model output into a typed config.

    Enum spellings are matched leniently and unknown entries dropped; fields
    left without any usable rule are removed. A config with no usable match
    pattern gets a generic content_contains "job" pattern.
    """
    patterns = []
    for mp in generated.match_patterns:
        pattern_type = _PATTERN_TYPES.get(_key(mp.pattern_type))
        if pattern_type is None:
            continue
        patterns.append(MatchPattern(
            pattern_type=pattern_type,
            selector=mp.selector,
            pattern=mp.pattern,
            content_contains=mp.content_contains,
        ))

    rules: Dict[str, List[ExtractionRule]] = {}
    for field_name, generated_rules in generated.extract_rules.items():
        converted = []
        for rule in generated_rules:
            source = _SOURCES.get(_key(rule.source))
            if source is None:
                continue
            transforms = [
                _TRANSFORMS[_key(t)] for t in (rule.transforms or []) if _key(t) in _TRANSFORMS
            ]
            converted.append(ExtractionRule(
                source=source,
                path=rule.path,
                selector=rule.selector,
                name=rule.name,
                pattern=rule.pattern,
                transforms=transforms,
            ))
        if converted:
            rules[_snake_case(field_name)] = converted

    if not patterns:
        patterns = [MatchPattern.contains("job")]

    return ExtractionConfig.create(name=generated.name, match_patterns=patterns, extract_rules=rules)


@dataclass
class GenerationResult:
    config: ExtractionConfig
    extraction_result: deterministic.ExtractionResult
    attempts: int

    @property
    def completion_state(self) -> CompletionState:
        return self.extraction_result.completion_state

    @property
    def is_successful(self) -> bool:
        return self.completion_state in (CompletionState.COMPLETE, CompletionState.SUFFICIENT)


def _jsonld_job_postings(soup: BeautifulSoup) -> Optional[str]:
    contents = [s.decode_contents() for s in soup.select(JSONLD_SELECTOR)]
    postings = [c for c in contents if "JobPosting" in c]
    return "\n\n".join(postings) if postings else None


def _analyze_page(soup: BeautifulSoup, url: str, has_jsonld: bool) -> str:
    meta_lines = []
    for meta in soup.select("meta[name], meta[property]")[:10]:
        key = meta.get("name") or meta.get("property")
        meta_lines.append(f"{key}: {(meta.get('content') or '')[:50]}")

    main = soup.select_one("main, article, [role=main], .job-description, .job-details")
    preview = " ".join(main.get_text(" ").split())[:200] if main else ""

    meta_block = "\n  ".join(meta_lines)
    return (
        "Page Analysis:\n"
        f"- URL: {url}\n"
        f"- Has JSON-LD JobPosting: {str(has_jsonld).lower()}\n"
        "- Meta tags found:\n"
        f"  {meta_block}\n"
        f"- Main content preview: {preview}..."
    )


def build_prompt(url: str, jsonld: Optional[str], page_analysis: str, feedback: Optional[str]) -> str:
    if jsonld:
        jsonld_section = f"## JSON-LD Data (PRIMARY SOURCE - use this first!)\n```json\n{jsonld}\n```"
    else:
        jsonld_section = "## No JSON-LD found - use CSS selectors and meta tags"

    feedback_section = ""
    if feedback:
        feedback_section = (
            "## IMPORTANT: Previous Attempt Failed\n"
            f"{feedback}\n\n"
            "You MUST fix the issues mentioned above. Try different selectors or paths."
        )

    return (
        "Generate an extraction config for this job posting page.\n\n"
        f"{page_analysis}\n"
        f"{jsonld_section}\n"
        f"{feedback_section}\n\n"
        "Remember:\n"
        "- If JSON-LD exists with JobPosting, use the jsonld source with JSONPath (e.g. $.title, $.description)\n"
        "- For nested JSON-LD: $.hiringOrganization.name, $.baseSalary.value.minValue\n"
        "- Provide fallback rules using css or meta sources\n"
        f"- The config will be reused for similar pages from this site ({url})"
    )


def build_feedback(result: deterministic.ExtractionResult, attempt: int) -> str:
    score = result.scoring_result
    missing = score.missing_required + score.missing_optional[:5]

    failure_lines = [
        f"  {field_name}: {errors[0]}"
        for field_name, errors in sorted(result.failed_rules.items())
        if errors
    ]
    failures = "Extraction failures:\n" + "\n".join(failure_lines) if failure_lines else ""

    return (
        f"Attempt {attempt} scored {score.score_percent} ({score.state.value}).\n\n"
        f"Extracted successfully: {', '.join(score.present_fields)}\n"
        f"MISSING fields: {', '.join(missing)}\n\n"
        f"{failures}\n\n"
        "FIX THE CONFIG to extract the missing fields."
    )


class ConfigGenerator:
    """Generates extraction configs with the AI gateway, refining them with feedback."""

    def __init__(self, client: AIGatewayClient):
        self.client = client

    def generate(self, html: str, url: str, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> GenerationResult:
        """
        Generate the best config the model can produce within max_attempts.

        Raises:
            AIServiceError: if the very first attempt fails (later failures
            return the best result so far)
        """
        soup = BeautifulSoup(html, "html.parser")
        jsonld = _jsonld_job_postings(soup)
        page_analysis = _analyze_page(soup, url, jsonld is not None)

        best: Optional[GenerationResult] = None
        feedback: Optional[str] = None

        for attempt in range(1, max_attempts + 1):
            prompt = build_prompt(url, jsonld, page_analysis, feedback)
            try:
                generated = self.client.generate_object(SYSTEM_PROMPT, prompt, GeneratedConfig)
            except AIServiceError as e:
                if best is None:
                    raise
                logger.warning(f"[config_generator] Attempt {attempt} failed, keeping best result: {e}")
                return best

            config = to_extraction_config(generated)
            result = deterministic.extract(html, url, config)
            current = GenerationResult(config=config, extraction_result=result, attempts=attempt)
            logger.info(f"[config_generator] Attempt {attempt}/{max_attempts} for {url}: {result.scoring_result.summary}")

            if best is None or result.scoring_result.score > best.extraction_result.scoring_result.score:
                best = current

            if current.is_successful:
                break
            feedback = build_feedback(result, attempt)

        return best

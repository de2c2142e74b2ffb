"""
Tests for config-driven extraction: JSON-LD lookup, config matching,
deterministic rules, AI config generation and the learning extractor.
"""
import json

import pytest
from bs4 import BeautifulSoup

from app.ai_service import AINetworkError, AIServiceError
from conftest import ScriptedAIClient
from pipeline.agents import JobExtractionAgent
from pipeline.completion import CompletionState
from pipeline.extraction import config_matcher, deterministic
from pipeline.extraction.config import (
    ExtractionConfig,
    ExtractionRule,
    MatchPattern,
    MatchPatternType,
    Transform,
    compute_match_hash,
)
from pipeline.extraction.config_generator import ConfigGenerator, GeneratedConfig, to_extraction_config
from pipeline.extraction.jsonld import find_job_posting, get_path, is_job_posting
from pipeline.extraction.service import (
    METHOD_AI,
    METHOD_GENERATED,
    METHOD_HASH,
    METHOD_MATCH,
    ConfigDrivenExtractor,
)

URL = "https://jobs.acme.com/positions/123"

POSTING = {
    "@context": "https://schema.org",
    "@type": "JobPosting",
    "title": "Senior Engineer",
    "description": "<p>Build &amp; ship</p>",
    "hiringOrganization": {"name": "Acme Corp"},
    "jobLocation": [{"address": {"addressLocality": "Denver"}}],
    "baseSalary": {"value": {"minValue": 120000, "maxValue": 160000}},
}

PAGE = f"""<html><head>
<meta property="og:site_name" content="Acme Careers">
<script type="application/ld+json">{json.dumps(POSTING)}</script>
</head><body>
<h1 class="title">Senior Engineer</h1>
<div class="salary">Pay: $130,000 per year</div>
<div class="remote">TELECOMMUTE</div>
</body></html>"""

PLAIN_PAGE = "<html><body><h1>Barista</h1><p>Make coffee.</p></body></html>"

GOOD_CONFIG = {
    "name": "Acme Careers - JSON-LD",
    "match_patterns": [
        {"pattern_type": "css_exists", "selector": "script[type='application/ld+json']", "content_contains": "JobPosting"},
    ],
    "extract_rules": {
        "title": [{"source": "jsonld", "path": "$.title"}],
        "company_name": [{"source": "jsonld", "path": "$.hiringOrganization.name"}],
        "description": [{"source": "jsonld", "path": "$.description", "transforms": ["inner_text"]}],
        "location": [{"source": "jsonld", "path": "$.jobLocation[0].address.addressLocality"}],
    },
}

POOR_CONFIG = {
    "name": "Acme Careers - title only",
    "match_patterns": [{"pattern_type": "content_contains", "content_contains": "Senior"}],
    "extract_rules": {"title": [{"source": "css", "selector": "h1.title"}]},
}


def soup(html):
    return BeautifulSoup(html, "html.parser")


class TestJsonLd:
    def test_is_job_posting_accepts_type_list(self):
        assert is_job_posting({"@type": ["Thing", "JobPosting"]})
        assert not is_job_posting({"@type": "Organization"})
        assert not is_job_posting("JobPosting")

    def test_finds_posting_inside_graph(self):
        doc = {"@graph": [{"@type": "WebPage"}, {"@type": "JobPosting", "title": "Nurse"}]}
        html = f'<script type="application/ld+json">{json.dumps(doc)}</script>'
        assert find_job_posting(soup(html))["title"] == "Nurse"

    def test_skips_invalid_blocks_and_falls_back_to_first(self):
        html = (
            '<script type="application/ld+json">{not json</script>'
            '<script type="application/ld+json">{"@type": "Organization", "name": "Acme"}</script>'
        )
        assert find_job_posting(soup(html)) == {"@type": "Organization", "name": "Acme"}

    def test_no_blocks(self):
        assert find_job_posting(soup(PLAIN_PAGE)) is None

    def test_get_path(self):
        assert get_path(POSTING, "$.hiringOrganization.name") == "Acme Corp"
        assert get_path(POSTING, "$.jobLocation[0].address.addressLocality") == "Denver"
        assert get_path(POSTING, "title") == "Senior Engineer"
        assert get_path(POSTING, "$.nothing.here") is None
        assert get_path(POSTING, "$") is POSTING


class TestMatchHash:
    def test_order_independent(self):
        a = MatchPattern.url_pattern("^https://acme")
        b = MatchPattern.contains("Apply Now")
        assert compute_match_hash([a, b]) == compute_match_hash([b, a])

    def test_differs_for_different_sets(self):
        a = MatchPattern.url_pattern("^https://acme")
        b = MatchPattern.contains("Apply Now")
        assert compute_match_hash([a]) != compute_match_hash([a, b])

    def test_create_sets_hash(self):
        patterns = [MatchPattern.contains("job")]
        config = ExtractionConfig.create("Generic", patterns, {})
        assert config.match_hash == compute_match_hash(patterns)
        assert len(config.match_hash) == 64

    def test_from_row_parses_json_columns(self):
        config = ExtractionConfig.create(
            "Acme", [MatchPattern.contains("job")], {"title": [ExtractionRule.css("h1")]}
        )
        row = {**config.to_row(), "id": 7}

        restored = ExtractionConfig.from_row(row)

        assert restored.id == "7"
        assert restored.extract_rules["title"][0].selector == "h1"
        assert restored.match_patterns[0].pattern_type == MatchPatternType.CONTENT_CONTAINS


class TestConfigMatcher:
    def test_all_patterns_must_match(self):
        partial = ExtractionConfig.create("Partial", [
            MatchPattern.url_pattern(r"jobs\.acme\.com"),
            MatchPattern.contains("Not on this page"),
        ], {})
        assert config_matcher.find_match(PAGE, URL, [partial]) is None

    def test_config_without_patterns_never_matches(self):
        empty = ExtractionConfig(name="Empty", match_patterns=[], match_hash="x", extract_rules={})
        assert config_matcher.find_match(PAGE, URL, [empty]) is None

    def test_most_specific_wins(self):
        broad = ExtractionConfig.create("Broad", [MatchPattern.url_pattern(r"jobs\.acme\.com")], {})
        specific = ExtractionConfig.create("Specific", [
            MatchPattern.url_pattern(r"jobs\.acme\.com"),
            MatchPattern.css_exists("script[type='application/ld+json']", content_contains="JobPosting"),
        ], {})
        assert config_matcher.find_match(PAGE, URL, [broad, specific]).name == "Specific"

    def test_invalid_selector_and_regex_do_not_match(self):
        bad = ExtractionConfig.create("Bad", [MatchPattern.css_exists("div[[["), MatchPattern.url_pattern("(")], {})
        assert config_matcher.find_match(PAGE, URL, [bad]) is None

    def test_signature_includes_host_and_jsonld(self):
        signature = config_matcher.page_signature(PAGE, URL)
        assert [p.pattern_type for p in signature] == [MatchPatternType.URL_PATTERN, MatchPatternType.CSS_EXISTS]

        config = ExtractionConfig.create("Learned", signature, {})
        assert config_matcher.find_match(PAGE, "https://jobs.acme.com/positions/456", [config]) is config
        assert config_matcher.find_match(PAGE, "https://jobs.acme.com.evil.net/1", [config]) is None

    def test_signature_hash_stable_across_pages_of_same_layout(self):
        other = PAGE.replace("Senior Engineer", "Staff Engineer")
        assert config_matcher.signature_hash(PAGE, URL) == config_matcher.signature_hash(
            other, "https://jobs.acme.com/positions/999"
        )
        assert config_matcher.signature_hash(PAGE, URL) != config_matcher.signature_hash(PLAIN_PAGE, URL)


class TestDeterministicExtractor:
    def test_extracts_with_fallbacks_and_transforms(self):
        config = ExtractionConfig.create("Acme", [MatchPattern.contains("job")], {
            "title": [ExtractionRule.jsonld("$.title")],
            "company_name": [ExtractionRule.jsonld("$.employer.name"), ExtractionRule.meta("og:site_name")],
            "description": [ExtractionRule.jsonld("$.description", [Transform.INNER_TEXT])],
            "location": [ExtractionRule.jsonld("$.jobLocation[0].address.addressLocality")],
            "salary_min": [ExtractionRule.jsonld("$.baseSalary.value.minValue")],
            "salary_max": [ExtractionRule.regex(".salary", r"\$([\d,]+)", [Transform.PARSE_NUMBER])],
            "is_remote": [ExtractionRule.css(".remote")],
        })

        result = deterministic.extract(PAGE, URL, config)

        assert result.data.title == "Senior Engineer"
        assert result.data.company_name == "Acme Careers"
        assert result.data.description == "Build & ship"
        assert result.data.location == "Denver"
        assert result.data.salary_min == 120000
        assert result.data.salary_max == 130000
        assert result.data.is_remote is True
        assert result.failed_rules == {}
        assert result.completion_state == CompletionState.SUFFICIENT

    def test_missing_title_defaults_and_records_failures(self):
        config = ExtractionConfig.create("Plain", [MatchPattern.contains("job")], {
            "title": [ExtractionRule.css("h2.none"), ExtractionRule.jsonld("$.title")],
        })

        result = deterministic.extract(PLAIN_PAGE, URL, config)

        assert result.data.title == "Unknown Title"
        assert result.failed_rules["title"] == [
            "css: Selector 'h2.none' matched no elements",
            "jsonld: No JSON-LD data found",
        ]
        assert result.completion_state == CompletionState.FAILED

    def test_unrepresentable_salary_is_dropped(self):
        config = ExtractionConfig.create("Odd pay", [MatchPattern.contains("job")], {
            "title": [ExtractionRule.css("h1")],
            "salary_min": [ExtractionRule.css(".pay-min")],
            "salary_max": [ExtractionRule.css(".pay-max")],
        })
        page = (
            "<html><body><h1>Engineer</h1>"
            "<span class='pay-min'>Infinity</span><span class='pay-max'>1e999</span>"
            "</body></html>"
        )

        result = deterministic.extract(page, URL, config)

        assert result.data.title == "Engineer"
        assert result.data.salary_min is None
        assert result.data.salary_max is None

    @pytest.mark.parametrize("value", ["-inf", "NaN", "competitive", "1e999"])
    def test_salary_parse_never_raises(self, value):
        data = deterministic.build_job_data({"title": "Engineer", "salary_min": value})
        assert data.salary_min is None

    def test_list_fields_split_on_commas(self):
        data = deterministic.build_job_data({"title": "Engineer", "benefits": "Dental, Vision"})
        assert data.benefits == ["Dental", "Vision"]
        assert data.qualifications is None


class TestToExtractionConfig:
    def test_lenient_enum_spellings(self):
        generated = GeneratedConfig.model_validate({
            "name": "Acme",
            "matchPatterns": [{"type": "CSS-Exists", "selector": "h1"}, {"pattern_type": "bogus"}],
            "extractRules": {
                "jobTitle": [{"source": "JSON-LD", "path": "$.title", "transforms": ["HTML-Decode", "unknown"]}],
                "salary": [{"source": "xpath", "path": "//span"}],
            },
        })

        config = to_extraction_config(generated)

        assert [p.pattern_type for p in config.match_patterns] == [MatchPatternType.CSS_EXISTS]
        assert list(config.extract_rules) == ["job_title"]
        assert config.extract_rules["job_title"][0].transforms == [Transform.HTML_DECODE]
        assert config.match_hash == compute_match_hash(config.match_patterns)

    def test_defaults_to_generic_pattern(self):
        config = to_extraction_config(GeneratedConfig(name="Empty"))
        assert config.match_patterns == [MatchPattern.contains("job")]


class TestConfigGenerator:
    def test_first_good_attempt(self):
        client = ScriptedAIClient(GOOD_CONFIG)

        result = ConfigGenerator(client).generate(PAGE, URL)

        assert result.is_successful
        assert result.attempts == 1
        assert result.completion_state == CompletionState.SUFFICIENT
        assert "JSON-LD Data (PRIMARY SOURCE" in client.calls[0][1]

    def test_retries_with_feedback(self):
        client = ScriptedAIClient(POOR_CONFIG, GOOD_CONFIG)

        result = ConfigGenerator(client).generate(PAGE, URL)

        assert result.attempts == 2
        assert result.config.name == "Acme Careers - JSON-LD"
        assert "Previous Attempt Failed" not in client.calls[0][1]
        assert "Previous Attempt Failed" in client.calls[1][1]
        assert "MISSING fields: company_name, description" in client.calls[1][1]

    def test_keeps_best_when_later_attempt_errors(self):
        client = ScriptedAIClient(POOR_CONFIG, AINetworkError("gateway down"))

        result = ConfigGenerator(client).generate(PAGE, URL)

        assert result.attempts == 1
        assert not result.is_successful

    def test_first_attempt_error_raises(self):
        client = ScriptedAIClient(AINetworkError("gateway down"))
        with pytest.raises(AIServiceError):
            ConfigGenerator(client).generate(PAGE, URL)

    def test_gives_up_after_max_attempts(self):
        client = ScriptedAIClient(POOR_CONFIG, POOR_CONFIG, POOR_CONFIG)

        result = ConfigGenerator(client).generate(PAGE, URL, max_attempts=3)

        assert result.attempts == 1
        assert len(client.calls) == 3
        assert result.completion_state == CompletionState.FAILED


def extractor(store, generator_client=None, agent_client=None, learning_enabled=True):
    generator = ConfigGenerator(generator_client) if generator_client is not None else None
    agent = JobExtractionAgent(agent_client or ScriptedAIClient())
    return ConfigDrivenExtractor(store, generator, agent, learning_enabled=learning_enabled)


class TestConfigDrivenExtractor:
    def test_hash_hit(self, store):
        config = ExtractionConfig.create(
            "Learned", config_matcher.page_signature(PAGE, URL), to_extraction_config(
                GeneratedConfig.model_validate(GOOD_CONFIG)
            ).extract_rules,
        )
        saved = store.insert_extraction_config(config)

        outcome = extractor(store).extract(PAGE, URL)

        assert outcome.method == METHOD_HASH
        assert outcome.config_id == saved.id
        assert outcome.data.company_name == "Acme Corp"

    def test_pattern_match(self, store):
        store.insert_extraction_config(ExtractionConfig.create(
            "Acme", [MatchPattern.url_pattern(r"jobs\.acme\.com")], {"title": [ExtractionRule.css("h1.title")]}
        ))

        outcome = extractor(store).extract(PAGE, URL)

        assert outcome.method == METHOD_MATCH
        assert outcome.data.title == "Senior Engineer"
        assert outcome.completion_state == CompletionState.MINIMAL

    def test_learns_config_then_reuses_it(self, store):
        generator_client = ScriptedAIClient(GOOD_CONFIG)
        agent_client = ScriptedAIClient()
        service = extractor(store, generator_client, agent_client)

        first = service.extract(PAGE, URL)
        second = service.extract(PAGE, "https://jobs.acme.com/positions/456")

        assert first.method == METHOD_GENERATED
        assert first.completion_state == CompletionState.PARTIAL
        assert store.configs[0].match_hash == config_matcher.signature_hash(PAGE, URL)
        assert second.method == METHOD_HASH
        assert second.config_id == first.config_id
        assert len(generator_client.calls) == 1
        assert agent_client.calls == []

    def test_learning_disabled_uses_agent(self, store):
        agent_client = ScriptedAIClient({"title": "Barista", "company_name": "Bean Co"})

        outcome = extractor(store, ScriptedAIClient(), agent_client, learning_enabled=False).extract(PLAIN_PAGE, URL)

        assert outcome.method == METHOD_AI
        assert outcome.data.title == "Barista"
        assert outcome.completion_state == CompletionState.MINIMAL
        assert outcome.scoring.earned_points == 35
        assert outcome.scoring.missing_required == ["description"]
        assert store.configs == []
        assert "Make coffee." in agent_client.calls[0][1]

    def test_unsuccessful_generation_falls_back_to_agent(self, store):
        generator_client = ScriptedAIClient(POOR_CONFIG, POOR_CONFIG, POOR_CONFIG)
        agent_client = ScriptedAIClient({"title": "Senior Engineer", "description": "Build things"})

        outcome = extractor(store, generator_client, agent_client).extract(PAGE, URL)

        assert outcome.method == METHOD_AI
        assert outcome.completion_state == CompletionState.PARTIAL
        assert store.configs == []

    def test_agent_failure_propagates(self, store):
        agent_client = ScriptedAIClient(AINetworkError("gateway down"))
        with pytest.raises(AIServiceError):
            extractor(store, agent_client=agent_client, learning_enabled=False).extract(PLAIN_PAGE, URL)

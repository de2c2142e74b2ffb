"""
Tests for URL normalization and ATS company id extraction.
"""
import pytest

from core.url_normalizer import (
    extract_ats_company_id,
    extract_greenhouse_company_id,
    greenhouse_board_url,
    is_greenhouse_url,
    normalize,
)


class TestNormalize:
    def test_lowercases_and_drops_default_port(self):
        assert normalize("HTTP://Example.com:80/a/") == "http://example.com/a"

    def test_strips_query_and_fragment(self):
        assert normalize("https://jobs.acme.com/role/42?utm_source=x#apply") == "https://jobs.acme.com/role/42"

    def test_keeps_non_default_port(self):
        assert normalize("https://example.com:8443/jobs") == "https://example.com:8443/jobs"

    def test_https_default_port_dropped(self):
        assert normalize("https://example.com:443/jobs/") == "https://example.com/jobs"

    def test_path_case_preserved(self):
        assert normalize("https://EXAMPLE.com/Jobs/ABC") == "https://example.com/Jobs/ABC"

    @pytest.mark.parametrize("url", [
        "HTTP://Example.com:80/a/",
        "https://boards.greenhouse.io/acme/jobs/123?gh_src=abc",
        "https://example.com",
        "not a url",
    ])
    def test_idempotent(self, url):
        assert normalize(normalize(url)) == normalize(url)

    def test_unparseable_returned_unchanged(self):
        assert normalize("not a url") == "not a url"
        assert normalize("http://example.com:notaport/x") == "http://example.com:notaport/x"


class TestGreenhouseIds:
    def test_board_host_uses_first_segment(self):
        assert extract_greenhouse_company_id("https://boards.greenhouse.io/acme/jobs/123") == "acme"
        assert extract_greenhouse_company_id("https://job-boards.greenhouse.io/acme") == "acme"

    def test_api_host_requires_boards_prefix(self):
        assert extract_greenhouse_company_id("https://boards-api.greenhouse.io/v1/boards/acme/jobs/123") == "acme"
        assert extract_greenhouse_company_id("https://boards-api.greenhouse.io/v2/acme/jobs") is None

    def test_non_ats_host(self):
        assert extract_ats_company_id("https://acme.com/careers/123") is None

    def test_is_greenhouse_url(self):
        assert is_greenhouse_url("https://boards.greenhouse.io/acme")
        assert not is_greenhouse_url("https://jobs.lever.co/acme")

    def test_board_url_round_trips_company_id(self):
        assert extract_greenhouse_company_id(greenhouse_board_url("acme")) == "acme"

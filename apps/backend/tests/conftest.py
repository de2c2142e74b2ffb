"""
Shared fixtures: an in-memory store, a scripted AI client and a context.
"""
from collections import deque
from typing import Dict, List, Optional

import httpx
import pytest

from core.net import HTTPClient
from core.store import DuplicateRecordError
from pipeline.extraction.config import ExtractionConfig
from pipeline.framework import PipelineContext
from pipeline.models import Company, Job, JobApplication, JobStreamEntry


class FakeStore:
    """Dict-backed stand-in for SupabaseStore with the same find-or-none semantics."""

    def __init__(self):
        self.companies: Dict[int, Company] = {}
        self.jobs: Dict[int, Job] = {}
        self.stream: List[JobStreamEntry] = []
        self.applications: List[JobApplication] = []
        self.configs: List[ExtractionConfig] = []
        self.default_status_ids: Dict[str, int] = {}
        self.closed: Dict[int, str] = {}
        self.checked: List[int] = []
        self.jobs_to_check: List[Job] = []
        self.fail_inserts = set()
        self._next_id = 100

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    # Companies

    def find_company_by_domain(self, domain: str) -> Optional[Company]:
        return next((c for c in self.companies.values() if c.company_domain == domain), None)

    def find_company_by_jobs_url(self, jobs_url: str) -> Optional[Company]:
        return next((c for c in self.companies.values() if c.company_jobs_url == jobs_url), None)

    def insert_company(self, company: Company) -> Optional[Company]:
        if "companies" in self.fail_inserts:
            return None
        created = company.model_copy(update={"company_id": self._id()})
        self.companies[created.company_id] = created
        return created

    def find_companies_by_job_source(self, source: str, limit: int) -> List[Company]:
        matches = [c for c in self.companies.values() if c.company_jobs_source == source and c.company_jobs_url]
        return matches[:limit]

    # Jobs

    def find_job_by_source_url(self, source_url: str) -> Optional[Job]:
        return next((j for j in self.jobs.values() if j.source_url == source_url), None)

    def insert_job(self, job: Job) -> Optional[Job]:
        if "jobs" in self.fail_inserts:
            return None
        created = job.model_copy(update={"job_id": self._id()})
        self.jobs[created.job_id] = created
        return created

    def find_jobs_to_check(self, limit: int, older_than_days: int) -> List[Job]:
        return self.jobs_to_check[:limit]

    def update_job_status_closed(self, job_id: int, reason: str) -> bool:
        self.closed[job_id] = reason
        return True

    def update_job_last_check(self, job_id: int) -> bool:
        self.checked.append(job_id)
        return True

    # Streams and applications

    def insert_job_stream_entry(self, entry: JobStreamEntry) -> Optional[JobStreamEntry]:
        if "job_stream" in self.fail_inserts:
            return None
        if any(e.job_id == entry.job_id and e.profile_id == entry.profile_id for e in self.stream):
            raise DuplicateRecordError("job_stream", f"(job_id, profile_id)=({entry.job_id}, {entry.profile_id})")
        created = entry.model_copy(update={"stream_id": self._id()})
        self.stream.append(created)
        return created

    def insert_job_application(self, application: JobApplication) -> Optional[JobApplication]:
        if "job_applications" in self.fail_inserts:
            return None
        created = application.model_copy(update={"application_id": self._id()})
        self.applications.append(created)
        return created

    def get_default_status_id(self, profile_id: str) -> Optional[int]:
        return self.default_status_ids.get(profile_id)

    # Extraction configs

    def find_extraction_config_by_hash(self, match_hash: str) -> Optional[ExtractionConfig]:
        return next((c for c in self.configs if c.match_hash == match_hash), None)

    def get_all_extraction_configs(self) -> List[ExtractionConfig]:
        return list(self.configs)

    def insert_extraction_config(self, config: ExtractionConfig) -> Optional[ExtractionConfig]:
        created = config.model_copy(update={"id": f"cfg-{self._id()}"})
        self.configs.append(created)
        return created

    def upsert_extraction_config(self, config: ExtractionConfig) -> Optional[ExtractionConfig]:
        self.configs = [
            c for c in self.configs
            if not (c.match_hash == config.match_hash and c.version == config.version)
        ]
        return self.insert_extraction_config(config)


class ScriptedAIClient:
    """
    Stands in for AIGatewayClient.generate_object.

    Each call pops the next scripted item: a pydantic instance or dict is
    returned (dicts are validated into the requested model), an exception is
    raised.
    """

    def __init__(self, *responses):
        self.responses = deque(responses)
        self.calls = []

    def generate_object(self, instructions, prompt, model_cls):
        self.calls.append((instructions, prompt, model_cls))
        if not self.responses:
            raise AssertionError(f"Unexpected AI call for {model_cls.__name__}")
        item = self.responses.popleft()
        if isinstance(item, Exception):
            raise item
        if isinstance(item, dict):
            return model_cls.model_validate(item)
        return item


def mock_http_client(handler) -> HTTPClient:
    """HTTPClient whose requests are answered by handler(request) -> httpx.Response."""
    return HTTPClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def ctx():
    return PipelineContext.create("test-profile")

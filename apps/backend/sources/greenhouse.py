"""
Greenhouse connector.

Discovery lists jobs from the public board API for every company whose job
source is Greenhouse. Ingestion skips HTML fetching and AI extraction: the
job detail API already returns structured data, and the company is known
from discovery.

  list:   GET https://boards-api.greenhouse.io/v1/boards/{board}/jobs
  detail: GET https://boards-api.greenhouse.io/v1/boards/{board}/jobs/{id}?pay_transparency=true
"""

import html
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

import httpx
from pydantic import BaseModel, Field

from core.net import HTTPClient
from core.url_normalizer import GREENHOUSE_API_HOST, extract_greenhouse_company_id, normalize
from pipeline.completion import CompletionState, evaluate
from pipeline.errors import ExtractionError, NetworkError, StepError
from pipeline.framework import NOOP_EMITTER, BasePipeline, BaseStep, PipelineContext, ProgressEmitter
from pipeline.models import DiscoveredJob, ExtractedJobData, Job, JobStreamEntry
from pipeline.steps.fetch import fetch_error
from pipeline.steps.load import JobLoader, JobLoaderInput, StreamLoader, StreamLoaderInput
from pipeline.steps.transform import JobTransformer

logger = logging.getLogger(__name__)

SOURCE_ID = "greenhouse"
API_BASE = f"https://{GREENHOUSE_API_HOST}/v1/boards"
FETCH_TIMEOUT = 10.0


def list_jobs_url(board_token: str) -> str:
    return f"{API_BASE}/{board_token}/jobs"


def job_detail_url(board_token: str, job_id) -> str:
    return f"{API_BASE}/{board_token}/jobs/{job_id}"


def with_pay_transparency(url: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}pay_transparency=true"


# API response models

class GreenhouseLocation(BaseModel):
    name: str


class GreenhousePayRange(BaseModel):
    min_cents: Optional[int] = None
    max_cents: Optional[int] = None
    currency_type: Optional[str] = None
    title: Optional[str] = None


class GreenhouseJobDetail(BaseModel):
    id: int
    title: str
    content: str
    absolute_url: str
    location: Optional[GreenhouseLocation] = None
    updated_at: Optional[str] = None
    internal_job_id: Optional[int] = None
    requisition_id: Optional[str] = None
    pay_input_ranges: Optional[List[GreenhousePayRange]] = None


class GreenhouseListedJob(BaseModel):
    id: int
    title: str
    absolute_url: str


class GreenhouseJobsResponse(BaseModel):
    jobs: List[GreenhouseListedJob] = Field(default_factory=list)


# Steps

@dataclass(frozen=True)
class GreenhouseFetchInput:
    api_url: str
    source_url: str
    company_id: Optional[int] = None


@dataclass(frozen=True)
class GreenhouseFetchOutput:
    json: str
    api_url: str
    source_url: str
    company_id: Optional[int] = None


@dataclass(frozen=True)
class GreenhouseParseOutput:
    data: ExtractedJobData
    source_url: str
    company_id: Optional[int]
    completion_state: CompletionState


class GreenhouseJobFetcher(BaseStep[GreenhouseFetchInput, GreenhouseFetchOutput]):
    name = "GreenhouseJobFetcher"

    def __init__(self, http_client: Optional[HTTPClient] = None, timeout: float = FETCH_TIMEOUT):
        self.http_client = http_client or HTTPClient()
        self.timeout = timeout

    def execute(self, input: GreenhouseFetchInput, ctx: PipelineContext) -> Union[GreenhouseFetchOutput, StepError]:
        url = with_pay_transparency(input.api_url)
        logger.info(f"[{ctx.run_id}] Fetching Greenhouse job: {url}")

        try:
            response = self.http_client.get(url, timeout=self.timeout, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            return fetch_error(e, url, self.name, what="Greenhouse job")

        if not response.is_success:
            return NetworkError(
                message=f"HTTP {response.status_code} when fetching Greenhouse job: {url}",
                step_name=self.name,
            )

        return GreenhouseFetchOutput(
            json=response.text,
            api_url=input.api_url,
            source_url=input.source_url,
            company_id=input.company_id,
        )


def to_extracted(job: GreenhouseJobDetail) -> ExtractedJobData:
    """
    Map a job detail response onto ExtractedJobData.

    company_name stays None: the company is already known from discovery.
    """
    location = job.location.name if job.location else None
    pay = job.pay_input_ranges[0] if job.pay_input_ranges else None
    return ExtractedJobData(
        title=job.title,
        company_name=None,
        description=html.unescape(job.content),
        location=location,
        salary_min=pay.min_cents // 100 if pay and pay.min_cents is not None else None,
        salary_max=pay.max_cents // 100 if pay and pay.max_cents is not None else None,
        salary_currency=pay.currency_type if pay else None,
        application_url=job.absolute_url,
        is_remote="remote" in location.lower() if location is not None else None,
    )


class GreenhouseJobParser(BaseStep[GreenhouseFetchOutput, GreenhouseParseOutput]):
    name = "GreenhouseJobParser"

    def execute(self, input: GreenhouseFetchOutput, ctx: PipelineContext) -> Union[GreenhouseParseOutput, StepError]:
        try:
            job = GreenhouseJobDetail.model_validate_json(input.json)
        except ValueError as e:
            return ExtractionError(
                message=f"Failed to parse Greenhouse JSON: {e}",
                step_name=self.name,
                cause=e,
            )

        data = to_extracted(job)
        state = evaluate(data)
        logger.info(f"[{ctx.run_id}] Parsed Greenhouse job: {job.title} (completion: {state.value})")
        return GreenhouseParseOutput(
            data=data,
            source_url=input.source_url,
            company_id=input.company_id,
            completion_state=state,
        )


# Pipeline

@dataclass(frozen=True)
class GreenhouseIngestionInput:
    api_url: str
    source_url: str
    company_id: Optional[int]
    profile_id: str
    source: str


@dataclass(frozen=True)
class GreenhouseIngestionOutput:
    job: Job
    stream_entry: Optional[JobStreamEntry]


class GreenhouseIngestionPipeline(BasePipeline[GreenhouseIngestionInput, GreenhouseIngestionOutput]):
    """
    Structured ingestion for Greenhouse jobs.

    CheckExisting -> Fetch -> Parse -> Transform -> LoadJob -> LoadStreamEntry
    """

    name = "GreenhouseIngestionPipeline"

    def __init__(
        self,
        store,
        http_client: Optional[HTTPClient] = None,
        progress_emitter: ProgressEmitter = NOOP_EMITTER,
    ):
        self.store = store
        self.progress = progress_emitter
        self.fetcher = GreenhouseJobFetcher(http_client)
        self.parser = GreenhouseJobParser()
        self.transformer = JobTransformer()
        self.job_loader = JobLoader(store)
        self.stream_loader = StreamLoader(store)

    def execute(
        self, input: GreenhouseIngestionInput, ctx: PipelineContext
    ) -> Union[GreenhouseIngestionOutput, StepError]:
        self.progress.emit(0, 1, "checking", "Looking up job...")

        existing = self.store.find_job_by_source_url(input.source_url)
        if existing is not None:
            logger.info(f"[{ctx.run_id}] Job already exists (id={existing.job_id}), skipping to stream")
            result = self._handle_existing(existing, input, ctx)
        else:
            result = self._handle_new(input, ctx)

        if isinstance(result, StepError):
            self.progress.emit(0, 1, "error", result.message)
        return result

    def _handle_existing(
        self, job: Job, input: GreenhouseIngestionInput, ctx: PipelineContext
    ) -> Union[GreenhouseIngestionOutput, StepError]:
        total = 2
        self.progress.emit(0, total, "checking", "Job found!")
        self.progress.emit(1, total, "streaming", "Adding to feed...")

        entry = self.stream_loader.run(
            StreamLoaderInput(job=job, profile_id=input.profile_id, source=input.source), ctx
        )
        if isinstance(entry, StepError):
            return entry

        self.progress.emit(total, total, "complete", "Job added")
        return GreenhouseIngestionOutput(job=job, stream_entry=entry)

    def _handle_new(
        self, input: GreenhouseIngestionInput, ctx: PipelineContext
    ) -> Union[GreenhouseIngestionOutput, StepError]:
        total = 5

        self.progress.emit(1, total, "fetching", "Getting job from Greenhouse API...")
        fetched = self.fetcher.run(
            GreenhouseFetchInput(api_url=input.api_url, source_url=input.source_url, company_id=input.company_id),
            ctx,
        )
        if isinstance(fetched, StepError):
            return fetched

        self.progress.emit(2, total, "parsing", "Parsing job data...")
        parsed = self.parser.run(fetched, ctx)
        if isinstance(parsed, StepError):
            return parsed

        self.progress.emit(3, total, "transforming", "Sanitizing data...")
        transformed = self.transformer.run(parsed.data, ctx)
        if isinstance(transformed, StepError):
            return transformed

        self.progress.emit(4, total, "loading", "Creating job record...")
        job = self.job_loader.run(
            JobLoaderInput(
                data=transformed,
                source_url=parsed.source_url,
                company_id=parsed.company_id,
                completion_state=parsed.completion_state.to_db_string(),
            ),
            ctx,
        )
        if isinstance(job, StepError):
            return job

        self.progress.emit(5, total, "streaming", "Adding to feed...")
        entry = self.stream_loader.run(
            StreamLoaderInput(job=job, profile_id=input.profile_id, source=input.source), ctx
        )
        if isinstance(entry, StepError):
            return entry

        self.progress.emit(total, total, "complete", "Job added successfully")
        return GreenhouseIngestionOutput(job=job, stream_entry=entry)


# Discovery

class GreenhouseDiscovery:
    """Finds jobs to ingest from the boards of Greenhouse-hosted companies."""

    def __init__(self, http_client: Optional[HTTPClient] = None, timeout: float = FETCH_TIMEOUT):
        self.http_client = http_client or HTTPClient()
        self.timeout = timeout

    def discover(self, store, config) -> List[DiscoveredJob]:
        """
        Args:
            store: Store used to find companies with a Greenhouse job source
            config: JobSourceConfig with company_batch_size and jobs_per_company

        Returns:
            Discovered jobs, each carrying its detail API URL
        """
        companies = store.find_companies_by_job_source(SOURCE_ID, config.company_batch_size)
        logger.info(f"[greenhouse] Found {len(companies)} companies with Greenhouse source")

        discovered: List[DiscoveredJob] = []
        for company in companies:
            board_token = extract_greenhouse_company_id(company.company_jobs_url or "")
            if not board_token:
                logger.warning(f"[greenhouse] Could not extract board token from {company.company_jobs_url}")
                continue
            discovered.extend(self.fetch_jobs(board_token, company.company_id, config.jobs_per_company))
        return discovered

    def fetch_jobs(self, board_token: str, company_id: Optional[int], limit: int) -> List[DiscoveredJob]:
        """First `limit` jobs on a board. Any API failure yields an empty list."""
        url = list_jobs_url(board_token)
        try:
            response = self.http_client.get(url, timeout=self.timeout, headers={"Accept": "application/json"})
            if not response.is_success:
                logger.error(f"[greenhouse] API error for {board_token}: {response.status_code}")
                return []
            listing = GreenhouseJobsResponse.model_validate_json(response.text)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[greenhouse] Failed to fetch ({board_token}): {e}")
            return []

        jobs = [
            DiscoveredJob(
                url=normalize(job.absolute_url),
                source=SOURCE_ID,
                company_id=company_id,
                api_url=job_detail_url(board_token, job.id),
                metadata={
                    "greenhouse_job_id": str(job.id),
                    "greenhouse_company_id": board_token,
                    "title": job.title,
                },
            )
            for job in listing.jobs[:limit]
        ]
        logger.info(f"[greenhouse] Discovered {len(jobs)} jobs from {board_token}")
        return jobs

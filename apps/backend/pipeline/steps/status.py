"""
Job status checking steps.

Used by the status workflow to find stale active jobs, check whether their
postings are still live, and record the result.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import httpx

from core.net import HTTPClient
from pipeline.errors import StepError
from pipeline.framework import BaseStep, PipelineContext
from pipeline.models import Job

logger = logging.getLogger(__name__)

CHECK_TIMEOUT = 15.0

CLOSURE_PHRASES = (
    "position has been filled",
    "no longer accepting",
    "job has been closed",
    "this position is closed",
    "job is no longer available",
    "posting has expired",
    "this job has expired",
    "application period has ended",
    "position is no longer available",
    "job posting has been removed",
    "this role has been filled",
    "we are no longer accepting applications",
)


@dataclass(frozen=True)
class JobStatusInput:
    batch_size: int = 1000
    older_than_days: int = 7


@dataclass(frozen=True)
class JobCheckResult:
    job: Job
    is_open: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class JobStatusCheckOutput:
    results: List[JobCheckResult] = field(default_factory=list)

    @property
    def total_checked(self) -> int:
        return len(self.results)

    @property
    def open_count(self) -> int:
        return sum(1 for r in self.results if r.is_open)

    @property
    def closed_count(self) -> int:
        return sum(1 for r in self.results if not r.is_open)


@dataclass(frozen=True)
class JobStatusUpdateOutput:
    updated_count: int
    failed_count: int
    closed_count: int


def find_closure_signal(text: str) -> Optional[str]:
    lowered = text.lower()
    for phrase in CLOSURE_PHRASES:
        if phrase in lowered:
            return phrase
    return None


def classify_response(status_code: int, body: str) -> Tuple[bool, Optional[str]]:
    """Returns (is_open, reason) for a fetched posting."""
    if status_code in (404, 410):
        return False, f"HTTP {status_code}"
    if 200 <= status_code < 300:
        signal = find_closure_signal(body)
        if signal:
            return False, f"page contains: '{signal}'"
        return True, None
    if 300 <= status_code < 400:
        return True, f"redirect (HTTP {status_code})"
    if status_code >= 500:
        return True, f"server error (HTTP {status_code})"
    return True, f"HTTP {status_code}"


class JobsToCheckFetcher(BaseStep[JobStatusInput, List[Job]]):
    name = "JobsToCheckFetcher"

    def __init__(self, store):
        self.store = store

    def execute(self, input: JobStatusInput, ctx: PipelineContext) -> Union[List[Job], StepError]:
        jobs = self.store.find_jobs_to_check(input.batch_size, input.older_than_days)
        logger.info(f"[{ctx.run_id}] Found {len(jobs)} jobs to check")
        return jobs


class JobStatusChecker(BaseStep[List[Job], JobStatusCheckOutput]):
    """
    Fetches each job's source URL.

    Only a 404/410 or a closure phrase on a successful page marks a job
    closed; redirects, server errors and network failures leave it open so a
    flaky site never closes live postings.
    """

    name = "JobStatusChecker"

    def __init__(self, http_client: Optional[HTTPClient] = None, timeout: float = CHECK_TIMEOUT):
        self.http_client = http_client or HTTPClient()
        self.timeout = timeout

    def check(self, job: Job) -> JobCheckResult:
        if not job.source_url:
            return JobCheckResult(job=job, is_open=True, reason="no source URL")
        try:
            response = self.http_client.get(job.source_url, timeout=self.timeout)
        except httpx.HTTPError as e:
            return JobCheckResult(job=job, is_open=True, reason=f"fetch error: {e}")
        is_open, reason = classify_response(response.status_code, response.text)
        return JobCheckResult(job=job, is_open=is_open, reason=reason)

    def execute(self, input: List[Job], ctx: PipelineContext) -> Union[JobStatusCheckOutput, StepError]:
        results = [self.check(job) for job in input]
        output = JobStatusCheckOutput(results=results)
        logger.info(
            f"[{ctx.run_id}] Checked {output.total_checked} jobs: "
            f"{output.open_count} open, {output.closed_count} closed"
        )
        return output


class JobStatusUpdater(BaseStep[JobStatusCheckOutput, JobStatusUpdateOutput]):
    name = "JobStatusUpdater"

    def __init__(self, store):
        self.store = store

    def execute(self, input: JobStatusCheckOutput, ctx: PipelineContext) -> Union[JobStatusUpdateOutput, StepError]:
        updated = failed = closed = 0
        for result in input.results:
            job_id = result.job.job_id
            if job_id is None:
                failed += 1
                continue
            if result.is_open:
                ok = self.store.update_job_last_check(job_id)
            else:
                ok = self.store.update_job_status_closed(job_id, result.reason or "closed")
                if ok:
                    closed += 1
                    logger.info(f"[{ctx.run_id}] Closed job {job_id}: {result.reason}")
            if ok:
                updated += 1
            else:
                failed += 1

        logger.info(f"[{ctx.run_id}] Updated {updated} jobs ({closed} closed, {failed} failed)")
        return JobStatusUpdateOutput(updated_count=updated, failed_count=failed, closed_count=closed)

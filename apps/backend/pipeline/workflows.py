"""
Background workflows triggered by the cron routes.

JobDiscoveryWorkflow fans a run out over the registered ATS sources and
ingests what they discover; JobStatusWorkflow re-checks stale active jobs
and closes the ones whose postings are gone. Both run as "system".
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from pipeline.errors import StepError
from pipeline.framework import PipelineContext, PipelineResult
from pipeline.ingestion import JobIngestionInput, JobIngestionPipeline
from pipeline.models import DiscoveredJob
from pipeline.steps.status import (
    JobStatusChecker,
    JobStatusInput,
    JobStatusUpdateOutput,
    JobStatusUpdater,
    JobsToCheckFetcher,
)
from pipeline.workflow import BaseWorkflow
from sources.greenhouse import SOURCE_ID as GREENHOUSE, GreenhouseIngestionInput, GreenhouseIngestionPipeline
from sources.registry import JobSource, SourceRegistry

logger = logging.getLogger(__name__)

SYSTEM_PROFILE = "system"


@dataclass(frozen=True)
class JobDiscoveryInput:
    source_id: Optional[str] = None


@dataclass(frozen=True)
class JobDiscoveryOutput:
    total_discovered: int = 0
    total_ingested: int = 0
    total_skipped: int = 0
    total_failed: int = 0
    by_source: Dict[str, int] = field(default_factory=dict)


class JobResult(Enum):
    INGESTED = "ingested"
    SKIPPED = "skipped"
    FAILED = "failed"


def is_already_exists(error: StepError) -> bool:
    message = error.message.lower()
    return "already exists" in message or "duplicate" in message


class JobDiscoveryWorkflow(BaseWorkflow[JobDiscoveryInput, JobDiscoveryOutput]):
    """
    Discovers and ingests jobs from ATS sources.

    Greenhouse jobs with a detail API URL go through the structured pipeline;
    everything else goes through AI ingestion. Within a source, requests are
    spaced by the source's configured delay.
    """

    name = "JobDiscoveryWorkflow"

    def __init__(
        self,
        store,
        registry: SourceRegistry,
        ingestion_pipeline: JobIngestionPipeline,
        greenhouse_pipeline: GreenhouseIngestionPipeline,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__()
        self.store = store
        self.registry = registry
        self.ingestion_pipeline = ingestion_pipeline
        self.greenhouse_pipeline = greenhouse_pipeline
        self._sleep = sleep

    def execute(self, input: JobDiscoveryInput, ctx: PipelineContext) -> Union[JobDiscoveryOutput, StepError]:
        sources = self._select_sources(input.source_id, ctx)
        if not sources:
            return JobDiscoveryOutput()

        totals = {result: 0 for result in JobResult}
        discovered_total = 0
        by_source: Dict[str, int] = {}

        for source in sources:
            logger.info(f"[{ctx.run_id}] Processing source: {source.name} ({source.source_id})")
            results = self._process_source(source, ctx)
            by_source[source.source_id] = len(results)
            discovered_total += len(results)
            for result in results:
                totals[result] += 1

        return JobDiscoveryOutput(
            total_discovered=discovered_total,
            total_ingested=totals[JobResult.INGESTED],
            total_skipped=totals[JobResult.SKIPPED],
            total_failed=totals[JobResult.FAILED],
            by_source=by_source,
        )

    def _select_sources(self, source_id: Optional[str], ctx: PipelineContext) -> List[JobSource]:
        if source_id is None:
            return self.registry.all_sources()
        source = self.registry.get(source_id)
        if source is None:
            logger.warning(f"[{ctx.run_id}] Unknown source ID: {source_id}")
            return []
        return [source]

    def _process_source(self, source: JobSource, ctx: PipelineContext) -> List[JobResult]:
        jobs = source.discover(self.store, source.config)
        logger.info(f"[{ctx.run_id}] Discovered {len(jobs)} jobs from {source.name}")

        delay_seconds = source.config.delay_between_requests_ms / 1000
        results = []
        for index, job in enumerate(jobs):
            if index > 0 and delay_seconds > 0:
                self._sleep(delay_seconds)
            logger.debug(f"[{ctx.run_id}] Processing job {index + 1}/{len(jobs)}: {job.url}")
            results.append(self._process_job(job, source.source_id, ctx))
        return results

    def _process_job(self, job: DiscoveredJob, source_id: str, ctx: PipelineContext) -> JobResult:
        source = f"discovery:{source_id}"
        if job.source == GREENHOUSE and job.api_url:
            result = self.greenhouse_pipeline.run(
                GreenhouseIngestionInput(
                    api_url=job.api_url,
                    source_url=job.url,
                    company_id=job.company_id,
                    profile_id=SYSTEM_PROFILE,
                    source=source,
                ),
                SYSTEM_PROFILE,
            )
        else:
            result = self.ingestion_pipeline.run(
                JobIngestionInput(url=job.url, profile_id=SYSTEM_PROFILE, source=source),
                SYSTEM_PROFILE,
            )

        if result.is_success:
            logger.debug(f"[{ctx.run_id}] Ingested: {job.url}")
            return JobResult.INGESTED
        if is_already_exists(result.error):
            logger.debug(f"[{ctx.run_id}] Skipped (already exists): {job.url}")
            return JobResult.SKIPPED
        logger.warning(f"[{ctx.run_id}] Failed to ingest {job.url}: {result.error.message}")
        return JobResult.FAILED

    def on_success(self, result: PipelineResult[JobDiscoveryOutput]) -> None:
        output = result.output
        logger.info(
            f"[{self.name}] Discovery completed: runId={result.run_id}, "
            f"discovered={output.total_discovered}, ingested={output.total_ingested}, "
            f"skipped={output.total_skipped}, failed={output.total_failed}, "
            f"duration={result.duration_ms}ms"
        )


class JobStatusWorkflow(BaseWorkflow[JobStatusInput, JobStatusUpdateOutput]):
    """JobsToCheckFetcher -> JobStatusChecker -> JobStatusUpdater"""

    name = "JobStatusWorkflow"

    def __init__(self, store, checker: Optional[JobStatusChecker] = None):
        super().__init__()
        self.store = store
        self.steps = (
            JobsToCheckFetcher(store)
            .and_then(checker or JobStatusChecker())
            .and_then(JobStatusUpdater(store))
        )

    def execute(self, input: JobStatusInput, ctx: PipelineContext) -> Union[JobStatusUpdateOutput, StepError]:
        return self.steps.run(input, ctx)

    def on_success(self, result: PipelineResult[JobStatusUpdateOutput]) -> None:
        output = result.output
        logger.info(
            f"[{self.name}] Status check completed: runId={result.run_id}, "
            f"updated={output.updated_count}, closed={output.closed_count}, "
            f"failed={output.failed_count}, duration={result.duration_ms}ms"
        )

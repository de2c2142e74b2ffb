"""
Job ingestion pipeline: URL in, job + stream entry (+ application) out.

  CheckExisting -> Fetch -> Extract -> Clean -> Transform -> ResolveCompany
    -> LoadJob -> LoadStreamEntry -> (optional) LoadApplication

An existing job (matched by normalized source URL) skips straight to the
stream entry, so re-ingesting a URL never re-fetches or re-extracts. Every
write commits on its own; a failure part way through is not rolled back.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from core.url_normalizer import normalize
from pipeline.errors import StepError
from pipeline.framework import NOOP_EMITTER, BasePipeline, PipelineContext, ProgressEmitter
from pipeline.models import Job, JobApplication, JobStreamEntry
from pipeline.steps.clean import HtmlCleaner
from pipeline.steps.company import CompanyResolver, CompanyResolverInput
from pipeline.steps.extract import JobExtractor
from pipeline.steps.fetch import HtmlFetcher, HtmlFetcherInput
from pipeline.steps.load import (
    ApplicationLoader,
    ApplicationLoaderInput,
    JobLoader,
    JobLoaderInput,
    StreamLoader,
    StreamLoaderInput,
)
from pipeline.steps.transform import JobTransformer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobIngestionInput:
    url: str
    profile_id: str
    source: str = "manual"
    create_application: bool = False
    notes: Optional[str] = None


@dataclass(frozen=True)
class JobIngestionOutput:
    job: Job
    stream_entry: Optional[JobStreamEntry]
    application: Optional[JobApplication] = None


class JobIngestionPipeline(BasePipeline[JobIngestionInput, JobIngestionOutput]):
    name = "JobIngestionPipeline"

    def __init__(
        self,
        store,
        fetcher: HtmlFetcher,
        extractor: JobExtractor,
        company_resolver: CompanyResolver,
        progress_emitter: ProgressEmitter = NOOP_EMITTER,
    ):
        self.store = store
        self.progress = progress_emitter
        self.html_fetcher = fetcher
        self.job_extractor = extractor
        self.html_cleaner = HtmlCleaner()
        self.job_transformer = JobTransformer()
        self.company_resolver = company_resolver
        self.job_loader = JobLoader(store)
        self.stream_loader = StreamLoader(store)
        self.application_loader = ApplicationLoader(store)

    def execute(self, input: JobIngestionInput, ctx: PipelineContext) -> Union[JobIngestionOutput, StepError]:
        self.progress.emit(0, 1, "checking", "Looking up job...")

        source_url = normalize(input.url)
        existing = self.store.find_job_by_source_url(source_url)
        if existing is not None:
            logger.info(f"[{ctx.run_id}] Job already exists (id={existing.job_id}), skipping to stream")
            result = self._handle_existing(existing, input, ctx)
        else:
            result = self._handle_new(input, source_url, ctx)

        if isinstance(result, StepError):
            self.progress.emit(0, 1, "error", result.message)
        return result

    def _handle_existing(
        self, job: Job, input: JobIngestionInput, ctx: PipelineContext
    ) -> Union[JobIngestionOutput, StepError]:
        total = 3 if input.create_application else 2
        self.progress.emit(0, total, "checking", "Job found!")
        self.progress.emit(1, total, "streaming", "Adding to your feed...")
        return self._finish(job, input, ctx, total, tracking_step=2)

    def _handle_new(
        self, input: JobIngestionInput, source_url: str, ctx: PipelineContext
    ) -> Union[JobIngestionOutput, StepError]:
        total = 8 if input.create_application else 7

        self.progress.emit(1, total, "fetching", "Getting job page...")
        fetched = self.html_fetcher.run(HtmlFetcherInput(url=input.url, profile_id=input.profile_id), ctx)
        if isinstance(fetched, StepError):
            return fetched

        self.progress.emit(2, total, "extracting", "Extracting job details...")
        extracted = self.job_extractor.run(fetched, ctx)
        if isinstance(extracted, StepError):
            return extracted

        self.progress.emit(3, total, "cleaning", "Processing content...")
        markdown = self.html_cleaner.run(fetched.html, ctx)
        if isinstance(markdown, StepError):
            return markdown

        transformed = self.job_transformer.run(extracted.data, ctx)
        if isinstance(transformed, StepError):
            return transformed

        self.progress.emit(4, total, "resolving", "Finding company...")
        company = self.company_resolver.run(
            CompanyResolverInput(data=transformed.value, url=input.url, content=markdown),
            ctx,
        )
        if isinstance(company, StepError):
            return company

        self.progress.emit(5, total, "loading", "Creating job record...")
        job = self.job_loader.run(
            JobLoaderInput(
                data=transformed,
                source_url=source_url,
                company_id=company.company_id if company else None,
                raw_html_object_id=fetched.object_id,
                completion_state=extracted.completion_state.to_db_string(),
            ),
            ctx,
        )
        if isinstance(job, StepError):
            return job

        self.progress.emit(6, total, "streaming", "Adding to your feed...")
        return self._finish(job, input, ctx, total, tracking_step=7)

    def _finish(
        self, job: Job, input: JobIngestionInput, ctx: PipelineContext, total: int, tracking_step: int
    ) -> Union[JobIngestionOutput, StepError]:
        """Stream entry, optional application, completion event."""
        stream_entry = self.stream_loader.run(
            StreamLoaderInput(job=job, profile_id=input.profile_id, source=input.source), ctx
        )
        if isinstance(stream_entry, StepError):
            return stream_entry

        application = None
        if input.create_application:
            self.progress.emit(tracking_step, total, "tracking", "Creating application...")
            application = self.application_loader.run(
                ApplicationLoaderInput(job=job, profile_id=input.profile_id, notes=input.notes), ctx
            )
            if isinstance(application, StepError):
                return application

        self.progress.emit(total, total, "complete", "Job added successfully")
        return JobIngestionOutput(job=job, stream_entry=stream_entry, application=application)

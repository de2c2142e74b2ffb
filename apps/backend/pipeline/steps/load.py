"""
Loader steps: persist jobs, stream entries and applications.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from core.store import DuplicateRecordError
from pipeline.errors import LoadError, StepError, ValidationError
from pipeline.framework import BaseStep, PipelineContext, Transformed
from pipeline.models import ExtractedJobData, Job, JobApplication, JobStreamEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobLoaderInput:
    data: Transformed[ExtractedJobData]
    source_url: str
    company_id: Optional[int] = None
    raw_html_object_id: Optional[str] = None
    completion_state: Optional[str] = None


@dataclass(frozen=True)
class StreamLoaderInput:
    job: Job
    profile_id: str
    source: str


@dataclass(frozen=True)
class ApplicationLoaderInput:
    job: Job
    profile_id: str
    notes: Optional[str] = None


class JobLoader(BaseStep[JobLoaderInput, Job]):
    """Inserts a job unless one with the same source URL already exists."""

    name = "JobLoader"

    def __init__(self, store):
        self.store = store

    def execute(self, input: JobLoaderInput, ctx: PipelineContext) -> Union[Job, StepError]:
        existing = self.store.find_job_by_source_url(input.source_url)
        if existing is not None:
            logger.info(f"[{ctx.run_id}] Job already exists: {existing.job_id}")
            return existing

        data = input.data.value
        job = Job.from_extracted(
            data,
            source_url=input.source_url,
            company_id=input.company_id,
            raw_html_object_id=input.raw_html_object_id,
            completion_state=input.completion_state,
        )
        created = self.store.insert_job(job)
        if created is None:
            return LoadError(message=f"Failed to create job: {data.title}", step_name=self.name)

        logger.info(f"[{ctx.run_id}] Created job {created.job_id}: {created.title}")
        return created


class StreamLoader(BaseStep[StreamLoaderInput, JobStreamEntry]):
    name = "StreamLoader"

    def __init__(self, store):
        self.store = store

    def execute(self, input: StreamLoaderInput, ctx: PipelineContext) -> Union[JobStreamEntry, StepError]:
        job_id = input.job.job_id
        if job_id is None:
            return ValidationError(message="Job must have an ID before adding to stream", step_name=self.name)

        entry = JobStreamEntry(job_id=job_id, profile_id=input.profile_id, source=input.source, status="new")
        try:
            created = self.store.insert_job_stream_entry(entry)
        except DuplicateRecordError as e:
            return LoadError(
                message=f"Stream entry already exists for job {job_id}",
                step_name=self.name,
                cause=e,
            )
        if created is None:
            return LoadError(message=f"Failed to create stream entry for job: {job_id}", step_name=self.name)

        logger.info(f"[{ctx.run_id}] Added job {job_id} to stream for {input.profile_id}")
        return created


class ApplicationLoader(BaseStep[ApplicationLoaderInput, JobApplication]):
    name = "ApplicationLoader"

    def __init__(self, store):
        self.store = store

    def execute(self, input: ApplicationLoaderInput, ctx: PipelineContext) -> Union[JobApplication, StepError]:
        job_id = input.job.job_id
        if job_id is None:
            return ValidationError(message="Job must have an ID before creating application", step_name=self.name)

        application = JobApplication(
            job_id=job_id,
            profile_id=input.profile_id,
            status_id=self.store.get_default_status_id(input.profile_id),
            status_order=0,
            application_date=date.today(),
            notes=input.notes,
        )
        try:
            created = self.store.insert_job_application(application)
        except DuplicateRecordError as e:
            return LoadError(
                message=f"Application already exists for job {job_id}",
                step_name=self.name,
                cause=e,
            )
        if created is None:
            return LoadError(message=f"Failed to create application for job: {job_id}", step_name=self.name)

        logger.info(f"[{ctx.run_id}] Created application {created.application_id} for job {job_id}")
        return created

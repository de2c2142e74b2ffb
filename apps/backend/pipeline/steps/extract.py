"""
JobExtractor step: config-driven extraction with AI fallback.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from app.ai_service import AIServiceError
from pipeline.completion import CompletionState
from pipeline.errors import StepError, TransformationError
from pipeline.extraction.service import ConfigDrivenExtractor
from pipeline.framework import BaseStep, PipelineContext
from pipeline.models import ExtractedJobData
from pipeline.steps.fetch import HtmlFetcherOutput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobExtractorOutput:
    url: str
    html: str
    object_id: Optional[str]
    data: ExtractedJobData
    completion_state: CompletionState
    method: str
    config_id: Optional[str] = None


class JobExtractor(BaseStep[HtmlFetcherOutput, JobExtractorOutput]):
    name = "JobExtractor"

    def __init__(self, extractor: ConfigDrivenExtractor):
        self.extractor = extractor

    def execute(self, input: HtmlFetcherOutput, ctx: PipelineContext) -> Union[JobExtractorOutput, StepError]:
        try:
            outcome = self.extractor.extract(input.html, input.url)
        except AIServiceError as e:
            return TransformationError(
                message=f"AI extraction failed: {e}",
                step_name=self.name,
                cause=e,
            )

        logger.info(
            f"[{ctx.run_id}] Extracted '{outcome.data.title}' via {outcome.method} "
            f"({outcome.scoring.summary if outcome.scoring else outcome.completion_state.value})"
        )
        return JobExtractorOutput(
            url=input.url,
            html=input.html,
            object_id=input.object_id,
            data=outcome.data,
            completion_state=outcome.completion_state,
            method=outcome.method,
            config_id=outcome.config_id,
        )

"""
JobTransformer step: sanitize extracted job data before it is stored.
"""

from typing import List, Optional, Union

from pipeline.errors import StepError
from pipeline.framework import BaseStep, PipelineContext, Transformed
from pipeline.models import ExtractedJobData

LIST_FIELDS = ("qualifications", "preferred_qualifications", "responsibilities", "benefits")


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _clean_list(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return None
    return [v.strip() for v in values if v and v.strip()]


def sanitize(data: ExtractedJobData) -> ExtractedJobData:
    """Trim strings, turn blank strings into None and drop blank list entries."""
    updates = {"title": data.title.strip()}
    for field_name, value in data.model_dump().items():
        if field_name == "title":
            continue
        if field_name in LIST_FIELDS:
            updates[field_name] = _clean_list(value)
        elif isinstance(value, str):
            updates[field_name] = _clean_text(value)
    return data.model_copy(update=updates)


class JobTransformer(BaseStep[ExtractedJobData, Transformed[ExtractedJobData]]):
    """Never fails."""

    name = "JobTransformer"

    def execute(self, input: ExtractedJobData, ctx: PipelineContext) -> Union[Transformed[ExtractedJobData], StepError]:
        return Transformed(sanitize(input))

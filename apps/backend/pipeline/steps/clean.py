"""
HtmlCleaner step: turn a fetched page into compact Markdown for the AI agents.
"""

import logging
from typing import Union

from core.html_cleaner import to_markdown
from pipeline.errors import StepError
from pipeline.framework import BaseStep, PipelineContext

logger = logging.getLogger(__name__)


class HtmlCleaner(BaseStep[str, str]):
    name = "HtmlCleaner"

    def execute(self, input: str, ctx: PipelineContext) -> Union[str, StepError]:
        markdown = to_markdown(input)
        logger.info(f"[{ctx.run_id}] Cleaned HTML: {len(input)} -> {len(markdown)} chars")
        return markdown

"""
HtmlFetcher step: download a job page and archive the raw HTML.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlsplit

import httpx

from core.net import DEFAULT_TIMEOUT, HTTPClient, is_unknown_host_error
from core.object_storage import ObjectStorageClient, StorageError
from pipeline.errors import ExtractionError, NetworkError, StepError
from pipeline.framework import BaseStep, PipelineContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HtmlFetcherInput:
    url: str
    profile_id: str


@dataclass(frozen=True)
class HtmlFetcherOutput:
    url: str
    html: str
    object_id: Optional[str]
    content_type: str


def fetch_error(error: Exception, url: str, step_name: str, what: str = "") -> StepError:
    """
    Classify a transport exception.

    Timeouts and DNS failures are Network errors; anything else is an
    Extraction error.
    """
    label = f"{what}: " if what else ""
    if isinstance(error, httpx.TimeoutException):
        return NetworkError(message=f"Timeout fetching {label}{url}", step_name=step_name, cause=error)
    if is_unknown_host_error(error):
        host = urlsplit(url).hostname or url
        return NetworkError(message=f"Unknown host: {host}", step_name=step_name, cause=error)
    return ExtractionError(
        message=f"Failed to fetch {what or 'HTML'}: {error}",
        step_name=step_name,
        cause=error,
    )


def archive_file_name(url: str) -> str:
    host = urlsplit(url).hostname or "unknown"
    return f"{host}-{int(time.time() * 1000)}.html"


class HtmlFetcher(BaseStep[HtmlFetcherInput, HtmlFetcherOutput]):
    """Fetches a page; optionally stores the raw HTML in object storage."""

    name = "HtmlFetcher"

    def __init__(
        self,
        http_client: Optional[HTTPClient] = None,
        storage_client: Optional[ObjectStorageClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.http_client = http_client or HTTPClient()
        self.storage_client = storage_client
        self.timeout = timeout

    def execute(self, input: HtmlFetcherInput, ctx: PipelineContext) -> Union[HtmlFetcherOutput, StepError]:
        logger.info(f"[{ctx.run_id}] Fetching HTML from: {input.url}")

        try:
            response = self.http_client.get(input.url, timeout=self.timeout)
        except httpx.HTTPError as e:
            return fetch_error(e, input.url, self.name)

        if not response.is_success:
            return NetworkError(
                message=f"HTTP {response.status_code} when fetching {input.url}",
                step_name=self.name,
            )

        html = response.text
        content_type = response.headers.get("content-type", "text/html")
        object_id = self._archive(html, input, ctx)

        return HtmlFetcherOutput(url=input.url, html=html, object_id=object_id, content_type=content_type)

    def _archive(self, html: str, input: HtmlFetcherInput, ctx: PipelineContext) -> Optional[str]:
        if self.storage_client is None:
            return None
        try:
            stored = self.storage_client.upload(
                html.encode("utf-8"),
                archive_file_name(input.url),
                "text/html",
                input.profile_id,
            )
        except StorageError as e:
            logger.warning(f"[{ctx.run_id}] Failed to store HTML: {e}")
            return None
        logger.info(f"[{ctx.run_id}] Stored HTML with ID: {stored.object_id}")
        return stored.object_id

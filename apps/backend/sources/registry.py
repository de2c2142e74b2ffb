"""
Registry of ATS job sources used by the discovery workflow.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from pipeline.models import DiscoveredJob
from sources.greenhouse import GreenhouseDiscovery


@dataclass(frozen=True)
class JobSourceConfig:
    """Per-source rate limits for a discovery run"""
    company_batch_size: int = 1
    jobs_per_company: int = 1
    delay_between_requests_ms: int = 1000


@dataclass(frozen=True)
class JobSource:
    """
    A discoverable ATS.

    discover(store, config) returns the jobs to ingest for this run; it must
    not raise for per-company API failures.
    """
    source_id: str
    name: str
    discover: Callable[..., List[DiscoveredJob]]
    config: JobSourceConfig = field(default_factory=JobSourceConfig)


class SourceRegistry:
    def __init__(self, sources: List[JobSource]):
        self._sources: Dict[str, JobSource] = {s.source_id.lower(): s for s in sources}

    def get(self, source_id: str) -> Optional[JobSource]:
        """Look up a source by id, case-insensitively."""
        return self._sources.get(source_id.strip().lower())

    def all_sources(self) -> List[JobSource]:
        return list(self._sources.values())


def default_registry(http_client=None) -> SourceRegistry:
    return SourceRegistry([
        JobSource(
            source_id="greenhouse",
            name="Greenhouse",
            discover=GreenhouseDiscovery(http_client).discover,
        ),
    ])

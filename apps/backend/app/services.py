"""
Service wiring: builds the store, clients, pipelines and workflows from
AppConfig. main.py creates one Services instance at startup and the routers
read it from app.state.services.
"""

import logging
from dataclasses import dataclass
from typing import List

from app.ai_service import AIGatewayClient
from app.config import AppConfig
from app.db_config import DBConfig
from core.net import HTTPClient
from core.object_storage import ObjectStorageClient
from core.store import SupabaseStore
from pipeline.agents import CompanyEnrichmentAgent, JobExtractionAgent
from pipeline.extraction.config_generator import ConfigGenerator
from pipeline.extraction.service import ConfigDrivenExtractor
from pipeline.ingestion import JobIngestionPipeline
from pipeline.steps.company import CompanyResolver
from pipeline.steps.extract import JobExtractor
from pipeline.steps.fetch import HtmlFetcher
from pipeline.workflows import JobDiscoveryWorkflow, JobStatusWorkflow
from security.auth import JwtVerifier, jwks_url_for
from sources.greenhouse import GreenhouseIngestionPipeline
from sources.registry import default_registry

logger = logging.getLogger(__name__)


@dataclass
class Services:
    ingestion_pipeline: JobIngestionPipeline
    status_workflow: JobStatusWorkflow
    discovery_workflow: JobDiscoveryWorkflow
    jwt_verifier: JwtVerifier
    api_keys: List[str]
    dev_mode: bool = False

    def start(self) -> None:
        self.status_workflow.start()
        self.discovery_workflow.start()

    def stop(self) -> None:
        self.status_workflow.stop()
        self.discovery_workflow.stop()


def build_ingestion_pipeline(store, ai_client: AIGatewayClient, http_client: HTTPClient,
                             storage_client, config_learning: bool = True) -> JobIngestionPipeline:
    extractor = ConfigDrivenExtractor(
        store,
        generator=ConfigGenerator(ai_client),
        agent=JobExtractionAgent(ai_client),
        learning_enabled=config_learning,
    )
    return JobIngestionPipeline(
        store,
        fetcher=HtmlFetcher(http_client, storage_client),
        extractor=JobExtractor(extractor),
        company_resolver=CompanyResolver(store, CompanyEnrichmentAgent(ai_client)),
    )


def build_services(config: AppConfig) -> Services:
    connection_params = DBConfig().get_connection_params()
    store = SupabaseStore(connection_params=connection_params)

    http_client = HTTPClient()
    ai_client = AIGatewayClient(
        api_key=config.ai.api_key,
        base_url=config.ai.base_url,
        model=config.ai.model,
    )
    storage_client = ObjectStorageClient(config.storage.base_url, config.storage.tenant_id)

    ingestion = build_ingestion_pipeline(store, ai_client, http_client, storage_client, config.ai.config_learning)
    discovery = JobDiscoveryWorkflow(
        store,
        registry=default_registry(http_client),
        ingestion_pipeline=ingestion,
        greenhouse_pipeline=GreenhouseIngestionPipeline(store, http_client),
    )

    logger.info(
        f"[services] Wired pipelines (model={config.ai.model}, "
        f"config_learning={config.ai.config_learning}, storage={config.storage.base_url})"
    )
    return Services(
        ingestion_pipeline=ingestion,
        status_workflow=JobStatusWorkflow(store),
        discovery_workflow=discovery,
        jwt_verifier=JwtVerifier(
            secret=config.auth.jwt_secret,
            jwks_url=jwks_url_for(config.auth.supabase_url) if config.auth.supabase_url else None,
        ),
        api_keys=config.auth.api_keys,
        dev_mode=config.dev_mode,
    )

"""
CompanyResolver step: find or create the employer behind a job posting.

Identity comes from AI enrichment (the employer's own website, its job board
URL), never from the posting URL itself: many postings live on ATS hosts and
treating those as employer domains would merge unrelated companies.

Resolution order:
  1. existing company with the extracted domain
  2. existing company with the extracted jobs URL
  3. new company, only when a domain was extracted
  4. no company; the job is stored without one
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlsplit

from app.ai_service import AIServiceError
from core.url_normalizer import extract_ats_company_id, greenhouse_board_url, is_greenhouse_url
from pipeline.agents import CompanyEnrichmentAgent
from pipeline.errors import LoadError, StepError
from pipeline.framework import BaseStep, PipelineContext
from pipeline.models import Company, ExtractedCompanyData, ExtractedJobData

logger = logging.getLogger(__name__)

# Hosts that serve job postings for other companies
ATS_DOMAINS = (
    "greenhouse.io",
    "lever.co",
    "ashbyhq.com",
    "myworkdayjobs.com",
    "workday.com",
    "workable.com",
    "smartrecruiters.com",
    "icims.com",
    "jobvite.com",
    "bamboohr.com",
    "recruitee.com",
    "breezy.hr",
    "teamtailor.com",
    "linkedin.com",
    "indeed.com",
)


def normalize_domain(value: Optional[str]) -> Optional[str]:
    """
    Bare lowercase host for a domain or website URL, or None for ATS hosts
    and unusable values.

    >>> normalize_domain("https://www.Acme.com/about")
    'acme.com'
    """
    if not value or not value.strip():
        return None
    value = value.strip().lower()
    if "://" not in value:
        value = f"http://{value}"
    try:
        host = urlsplit(value).hostname
    except ValueError:
        return None
    if not host or "." not in host:
        return None
    if host.startswith("www."):
        host = host[4:]
    if is_ats_domain(host):
        return None
    return host


def is_ats_domain(host: str) -> bool:
    return any(host == ats or host.endswith(f".{ats}") for ats in ATS_DOMAINS)


@dataclass(frozen=True)
class CompanyResolverInput:
    data: ExtractedJobData
    url: str
    content: Optional[str] = None


class CompanyResolver(BaseStep[CompanyResolverInput, Optional[Company]]):
    """Returns the resolved Company, or None when the job should be stored without one."""

    name = "CompanyResolver"

    def __init__(self, store, enricher: Optional[CompanyEnrichmentAgent] = None):
        self.store = store
        self.enricher = enricher

    def execute(self, input: CompanyResolverInput, ctx: PipelineContext) -> Union[Optional[Company], StepError]:
        logger.info(f"[{ctx.run_id}] Resolving company for: {input.url}")

        enrichment = self._enrich(input, ctx)

        domain = None
        jobs_url = None
        if enrichment is not None:
            domain = normalize_domain(enrichment.domain) or normalize_domain(enrichment.website_url)
            jobs_url = enrichment.jobs_url
        if not jobs_url:
            ats_id = extract_ats_company_id(input.url)
            if ats_id:
                jobs_url = greenhouse_board_url(ats_id)

        if domain:
            company = self.store.find_company_by_domain(domain)
            if company is not None:
                logger.info(f"[{ctx.run_id}] Found company by domain: {company.company_name or domain}")
                return company

        if jobs_url:
            company = self.store.find_company_by_jobs_url(jobs_url)
            if company is not None:
                logger.info(f"[{ctx.run_id}] Found company by jobs URL: {company.company_name or jobs_url}")
                return company

        if not domain:
            logger.info(f"[{ctx.run_id}] No company domain for {input.url}; job will have no company")
            return None

        new_company = self._build_company(input.data, enrichment, domain, jobs_url)
        created = self.store.insert_company(new_company)
        if created is None:
            return LoadError(
                message=f"Failed to create company for domain: {domain}",
                step_name=self.name,
            )
        logger.info(f"[{ctx.run_id}] Created company: {created.company_name or domain}")
        return created

    def _enrich(self, input: CompanyResolverInput, ctx: PipelineContext) -> Optional[ExtractedCompanyData]:
        company_name = input.data.company_name
        if not company_name or self.enricher is None:
            return None
        try:
            return self.enricher.enrich(company_name, input.content or "", input.url)
        except AIServiceError as e:
            logger.warning(f"[{ctx.run_id}] Company enrichment failed for '{company_name}': {e}")
            return None

    @staticmethod
    def _build_company(
        data: ExtractedJobData,
        enrichment: Optional[ExtractedCompanyData],
        domain: str,
        jobs_url: Optional[str],
    ) -> Company:
        name = (enrichment.name if enrichment else None) or data.company_name
        return Company(
            company_name=name,
            company_domain=domain,
            company_jobs_url=jobs_url,
            company_jobs_source="greenhouse" if jobs_url and is_greenhouse_url(jobs_url) else None,
            industry=enrichment.industry if enrichment else None,
            company_size=enrichment.size if enrichment else None,
            description=enrichment.description if enrichment else None,
            headquarters=enrichment.headquarters if enrichment else None,
        )

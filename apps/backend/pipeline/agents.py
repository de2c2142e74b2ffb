"""
AI agents for job extraction and company enrichment.

Thin prompt wrappers over AIGatewayClient.generate_object; errors surface as
AIServiceError subclasses for the calling step to classify.
"""

import logging

from app.ai_service import AIGatewayClient
from pipeline.models import ExtractedCompanyData, ExtractedJobData

logger = logging.getLogger(__name__)

JOB_EXTRACTOR_INSTRUCTIONS = """You are a job posting parser. Given the content of a job posting page,
extract structured job information. Be thorough but concise.

Guidelines:
- Use the exact job title as shown on the page
- Take the company name from the page content
- Parse location, job type and experience level from the posting
- Return qualifications, responsibilities and benefits as lists of short strings
- Include salary bounds as whole numbers when they are visible
- Include the application URL if one is present
- If information is not clearly present, leave the field empty rather than guessing"""

COMPANY_ENRICHER_INSTRUCTIONS = """You extract and enrich company information from job posting context.
Given the company name, the job posting content and its URL, return details about the employer.

Guidelines:
- Infer the industry from the posting and the company name
- Estimate company size from available clues; use one of: startup, small, medium, large, enterprise
- Include a short company description if the page has "about us" content
- Identify the headquarters location if mentioned
- website_url and domain must be the employer's own website, never the job board or
  applicant tracking system hosting the posting (e.g. greenhouse.io, lever.co, ashbyhq.com)
- jobs_url is the base URL of the company's job listings (e.g. https://jobs.ashbyhq.com/acme)
- Only include information that can be reasonably inferred; do not guess"""


class JobExtractionAgent:
    """Extracts ExtractedJobData from page content."""

    def __init__(self, client: AIGatewayClient):
        self.client = client

    def extract(self, content: str, url: str) -> ExtractedJobData:
        prompt = (
            "Extract job details from this job posting content.\n"
            f"Source URL: {url}\n"
            "Content:\n"
            f"{content}"
        )
        return self.client.generate_object(JOB_EXTRACTOR_INSTRUCTIONS, prompt, ExtractedJobData)


class CompanyEnrichmentAgent:
    """Infers employer identity (domain, jobs URL, industry, size) from a posting."""

    def __init__(self, client: AIGatewayClient):
        self.client = client

    def enrich(self, company_name: str, content: str, url: str) -> ExtractedCompanyData:
        prompt = (
            f"Extract and enrich company information for '{company_name}' from this job posting.\n"
            f"Source URL: {url}\n"
            "Content:\n"
            f"{content}"
        )
        return self.client.generate_object(COMPANY_ENRICHER_INSTRUCTIONS, prompt, ExtractedCompanyData)

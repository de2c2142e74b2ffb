"""
Domain records shared by the ingestion pipelines and the store.

Field names follow the database column names so rows returned by the store
validate directly into these models.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExtractedJobData(BaseModel):
    """Job fields produced by an extractor (AI, config-driven or structured API)"""
    title: str
    company_name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    job_type: Optional[str] = None
    experience_level: Optional[str] = None
    education_level: Optional[str] = None
    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    salary_currency: Optional[str] = None
    qualifications: Optional[List[str]] = None
    preferred_qualifications: Optional[List[str]] = None
    responsibilities: Optional[List[str]] = None
    benefits: Optional[List[str]] = None
    category: Optional[str] = None
    application_url: Optional[str] = None
    is_remote: Optional[bool] = None
    posted_date: Optional[str] = None
    closing_date: Optional[str] = None


class ExtractedCompanyData(BaseModel):
    """Company identity produced by AI enrichment"""
    name: str
    domain: Optional[str] = None
    industry: Optional[str] = None
    size: Optional[str] = None
    description: Optional[str] = None
    headquarters: Optional[str] = None
    website_url: Optional[str] = None
    jobs_url: Optional[str] = None


class Company(BaseModel):
    company_id: Optional[int] = None
    company_name: Optional[str] = None
    company_domain: Optional[str] = None
    company_jobs_url: Optional[str] = None
    company_jobs_source: Optional[str] = None
    company_linkedin_url: Optional[str] = None
    company_city: Optional[str] = None
    company_state: Optional[str] = None
    primary_industry: Optional[str] = None
    employee_count_min: Optional[int] = None
    employee_count_max: Optional[int] = None
    industry: Optional[str] = None
    company_size: Optional[str] = None
    description: Optional[str] = None
    headquarters: Optional[str] = None


class Job(BaseModel):
    job_id: Optional[int] = None
    company_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    job_type: Optional[str] = None
    experience_level: Optional[str] = None
    education_level: Optional[str] = None
    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    salary_currency: Optional[str] = None
    qualifications: Optional[List[str]] = None
    preferred_qualifications: Optional[List[str]] = None
    responsibilities: Optional[List[str]] = None
    benefits: Optional[List[str]] = None
    category: Optional[str] = None
    source_url: Optional[str] = None
    application_url: Optional[str] = None
    is_remote: Optional[bool] = None
    raw_html_object_id: Optional[str] = None
    status: Optional[str] = "active"
    completion_state: Optional[str] = None
    posted_date: Optional[str] = None
    closing_date: Optional[str] = None
    last_status_check: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    closed_reason: Optional[str] = None

    @classmethod
    def from_extracted(
        cls,
        data: ExtractedJobData,
        source_url: str,
        company_id: Optional[int] = None,
        raw_html_object_id: Optional[str] = None,
        completion_state: Optional[str] = None,
    ) -> "Job":
        fields = data.model_dump(exclude={"company_name"})
        return cls(
            **fields,
            company_id=company_id,
            source_url=source_url,
            raw_html_object_id=raw_html_object_id,
            completion_state=completion_state,
        )


class JobStreamEntry(BaseModel):
    stream_id: Optional[int] = None
    job_id: int
    profile_id: str
    source: str
    status: Optional[str] = "new"
    best_match_score: Optional[int] = None
    best_match_job_profile_id: Optional[int] = None
    profile_matches: Optional[Dict[str, Any]] = None


class JobApplication(BaseModel):
    application_id: Optional[int] = None
    job_id: Optional[int] = None
    profile_id: str
    job_profile_id: Optional[int] = None
    status_id: Optional[int] = None
    status_order: int = 0
    application_date: Optional[date] = None
    notes: Optional[str] = None


class DiscoveredJob(BaseModel):
    """A job found by a source connector, not yet ingested"""
    url: str
    source: str
    company_id: Optional[int] = None
    api_url: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

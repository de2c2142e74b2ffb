"""
Persistent store for companies, jobs, stream entries, applications and
extraction configs (Supabase Postgres via psycopg2).

Lookups follow find-or-none semantics: database errors are logged, the
transaction rolled back and None / False / [] returned. Inserts return the
full created row so the pipeline can chain generated ids forward. A unique
constraint violation on insert raises DuplicateRecordError so callers can
tell "already exists" apart from a failed write.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional

import psycopg2
from psycopg2 import errorcodes
from psycopg2.extras import Json, RealDictCursor

from pipeline.extraction.config import ExtractionConfig
from pipeline.models import Company, Job, JobApplication, JobStreamEntry

logger = logging.getLogger(__name__)

EXTRACTION_CONFIG_LIMIT = 100

COMPANY_COLUMNS = (
    "company_name", "company_domain", "company_jobs_url", "company_jobs_source",
    "company_linkedin_url", "company_city", "company_state", "primary_industry",
    "employee_count_min", "employee_count_max", "industry", "company_size",
    "description", "headquarters",
)

JOB_COLUMNS = (
    "company_id", "title", "description", "location", "job_type", "experience_level",
    "education_level", "salary_min", "salary_max", "salary_currency", "qualifications",
    "preferred_qualifications", "responsibilities", "benefits", "category", "source_url",
    "application_url", "is_remote", "raw_html_object_id", "status", "completion_state",
    "posted_date", "closing_date",
)


def _plain_row(row) -> Dict[str, Any]:
    """Convert driver types (UUID, Decimal, date) into what the models accept."""
    result = {}
    for key, value in dict(row).items():
        if isinstance(value, uuid.UUID):
            value = str(value)
        elif isinstance(value, Decimal):
            value = int(value) if value == value.to_integral_value() else float(value)
        elif isinstance(value, date) and not isinstance(value, datetime):
            value = value.isoformat()
        result[key] = value
    return result


class DuplicateRecordError(Exception):
    """Insert violated a unique constraint"""

    def __init__(self, table: str, detail: str = ""):
        self.table = table
        super().__init__(f"Duplicate record in {table}: {detail}".rstrip(": "))


class SupabaseStore:
    """Postgres-backed store. Opens one short-lived connection per operation."""

    def __init__(self, connection_params: Optional[Dict[str, Any]] = None,
                 connect: Optional[Callable[[], Any]] = None):
        """
        Args:
            connection_params: kwargs for psycopg2.connect()
            connect: Optional connection factory overriding connection_params
        """
        if connect is None and not connection_params:
            raise ValueError("SupabaseStore requires connection_params or a connect factory")
        self._connect = connect or (lambda: psycopg2.connect(**connection_params))

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        conn = self._connect()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _fetch_one(self, operation: str, sql: str, params: Any) -> Optional[Dict[str, Any]]:
        try:
            with self._cursor() as cursor:
                cursor.execute(sql, params)
                row = cursor.fetchone()
                return _plain_row(row) if row else None
        except psycopg2.Error as e:
            logger.error(f"[store] {operation} failed: {e}")
            return None

    def _fetch_all(self, operation: str, sql: str, params: tuple) -> List[Dict[str, Any]]:
        try:
            with self._cursor() as cursor:
                cursor.execute(sql, params)
                return [_plain_row(row) for row in cursor.fetchall()]
        except psycopg2.Error as e:
            logger.error(f"[store] {operation} failed: {e}")
            return []

    def _insert(self, table: str, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        columns = [c for c, v in values.items() if v is not None]
        placeholders = ", ".join(["%s"] * len(columns))
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *"
        params = tuple(values[c] for c in columns)
        try:
            with self._cursor() as cursor:
                cursor.execute(sql, params)
                row = cursor.fetchone()
                return _plain_row(row) if row else None
        except psycopg2.IntegrityError as e:
            if e.pgcode == errorcodes.UNIQUE_VIOLATION:
                logger.info(f"[store] Duplicate insert into {table}: {e.diag.message_detail or e}")
                raise DuplicateRecordError(table, e.diag.message_detail or "") from e
            logger.error(f"[store] Insert into {table} failed: {e}")
            return None
        except psycopg2.Error as e:
            logger.error(f"[store] Insert into {table} failed: {e}")
            return None

    # Companies

    def find_company_by_domain(self, domain: str) -> Optional[Company]:
        row = self._fetch_one(
            "find_company_by_domain",
            "SELECT * FROM companies WHERE company_domain = %s LIMIT 1",
            (domain,),
        )
        return Company.model_validate(row) if row else None

    def find_company_by_jobs_url(self, jobs_url: str) -> Optional[Company]:
        row = self._fetch_one(
            "find_company_by_jobs_url",
            "SELECT * FROM companies WHERE company_jobs_url = %s LIMIT 1",
            (jobs_url,),
        )
        return Company.model_validate(row) if row else None

    def insert_company(self, company: Company) -> Optional[Company]:
        values = {c: getattr(company, c) for c in COMPANY_COLUMNS}
        row = self._insert("companies", values)
        return Company.model_validate(row) if row else None

    def find_companies_by_job_source(self, source: str, limit: int) -> List[Company]:
        rows = self._fetch_all(
            "find_companies_by_job_source",
            "SELECT * FROM companies WHERE company_jobs_source = %s "
            "AND company_jobs_url IS NOT NULL ORDER BY company_id LIMIT %s",
            (source, limit),
        )
        return [Company.model_validate(r) for r in rows]

    # Jobs

    def find_job_by_source_url(self, source_url: str) -> Optional[Job]:
        row = self._fetch_one(
            "find_job_by_source_url",
            "SELECT * FROM jobs WHERE source_url = %s LIMIT 1",
            (source_url,),
        )
        return Job.model_validate(row) if row else None

    def insert_job(self, job: Job) -> Optional[Job]:
        values = {c: getattr(job, c) for c in JOB_COLUMNS}
        row = self._insert("jobs", values)
        return Job.model_validate(row) if row else None

    def find_jobs_to_check(self, limit: int, older_than_days: int) -> List[Job]:
        """Active jobs never checked, or last checked before the cutoff, oldest first."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        rows = self._fetch_all(
            "find_jobs_to_check",
            "SELECT * FROM jobs WHERE status = 'active' AND source_url IS NOT NULL "
            "AND (last_status_check IS NULL OR last_status_check < %s) "
            "ORDER BY last_status_check ASC NULLS FIRST LIMIT %s",
            (cutoff, limit),
        )
        return [Job.model_validate(r) for r in rows]

    def _update_job(self, operation: str, sql: str, params: tuple) -> bool:
        try:
            with self._cursor() as cursor:
                cursor.execute(sql, params)
                return cursor.rowcount > 0
        except psycopg2.Error as e:
            logger.error(f"[store] {operation} failed: {e}")
            return False

    def update_job_status_closed(self, job_id: int, reason: str) -> bool:
        now = datetime.now(timezone.utc)
        return self._update_job(
            "update_job_status_closed",
            "UPDATE jobs SET status = 'closed', closed_reason = %s, closed_at = %s, "
            "last_status_check = %s WHERE job_id = %s",
            (reason, now, now, job_id),
        )

    def update_job_last_check(self, job_id: int) -> bool:
        return self._update_job(
            "update_job_last_check",
            "UPDATE jobs SET last_status_check = %s WHERE job_id = %s",
            (datetime.now(timezone.utc), job_id),
        )

    # Streams and applications

    def insert_job_stream_entry(self, entry: JobStreamEntry) -> Optional[JobStreamEntry]:
        values = entry.model_dump(exclude={"stream_id"})
        if values.get("profile_matches") is not None:
            values["profile_matches"] = Json(values["profile_matches"])
        row = self._insert("job_stream", values)
        return JobStreamEntry.model_validate(row) if row else None

    def insert_job_application(self, application: JobApplication) -> Optional[JobApplication]:
        values = application.model_dump(exclude={"application_id"})
        row = self._insert("job_applications", values)
        return JobApplication.model_validate(row) if row else None

    def get_default_status_id(self, profile_id: str) -> Optional[int]:
        row = self._fetch_one(
            "get_default_status_id",
            "SELECT status_id FROM application_statuses WHERE profile_id = %s AND is_default = true LIMIT 1",
            (profile_id,),
        )
        return row["status_id"] if row else None

    # Extraction configs

    def find_extraction_config_by_hash(self, match_hash: str) -> Optional[ExtractionConfig]:
        row = self._fetch_one(
            "find_extraction_config_by_hash",
            "SELECT * FROM extraction_configs WHERE match_hash = %s ORDER BY version DESC LIMIT 1",
            (match_hash,),
        )
        return ExtractionConfig.from_row(row) if row else None

    def get_all_extraction_configs(self) -> List[ExtractionConfig]:
        rows = self._fetch_all(
            "get_all_extraction_configs",
            "SELECT * FROM extraction_configs ORDER BY created_at DESC LIMIT %s",
            (EXTRACTION_CONFIG_LIMIT,),
        )
        return [ExtractionConfig.from_row(r) for r in rows]

    def insert_extraction_config(self, config: ExtractionConfig) -> Optional[ExtractionConfig]:
        row = self._insert("extraction_configs", config.to_row())
        return ExtractionConfig.from_row(row) if row else None

    def upsert_extraction_config(self, config: ExtractionConfig) -> Optional[ExtractionConfig]:
        values = config.to_row()
        row = self._fetch_one(
            "upsert_extraction_config",
            "INSERT INTO extraction_configs (name, version, match_patterns, match_hash, extract_rules) "
            "VALUES (%(name)s, %(version)s, %(match_patterns)s, %(match_hash)s, %(extract_rules)s) "
            "ON CONFLICT (match_hash, version) DO UPDATE SET name = EXCLUDED.name, "
            "match_patterns = EXCLUDED.match_patterns, extract_rules = EXCLUDED.extract_rules, "
            "updated_at = now() RETURNING *",
            values,
        )
        return ExtractionConfig.from_row(row) if row else None

"""
Job ingestion endpoint.

POST /api/v1/jobs/ingest runs the ingestion pipeline synchronously for the
authenticated profile and reports the created records.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.rate_limit import limiter, RATE_LIMIT_INGEST
from pipeline.ingestion import JobIngestionInput
from security.auth import AuthError, authenticate_bearer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])


class IngestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    source: str = "manual"
    create_application: bool = Field(default=False, alias="createApplication")
    notes: Optional[str] = None


@router.post("/ingest")
@limiter.limit(RATE_LIMIT_INGEST)
def ingest_job(request: Request, body: IngestRequest):
    """
    Ingest a job posting URL for the calling user.

    Returns 200 with job/stream/application ids, 401 for a missing or
    invalid token, 503 when the signing keys cannot be fetched, 500 with
    the pipeline error otherwise.
    """
    services = request.app.state.services

    try:
        profile_id = authenticate_bearer(request.headers.get("Authorization"), services.jwt_verifier)
    except AuthError as e:
        return JSONResponse(status_code=e.status_code, content={"error": e.message})

    logger.info(f"[jobs] Ingest request from {profile_id}: {body.url}")
    result = services.ingestion_pipeline.run(
        JobIngestionInput(
            url=body.url,
            profile_id=profile_id,
            source=body.source,
            create_application=body.create_application,
            notes=body.notes,
        ),
        profile_id,
    )

    if result.is_failure:
        error = result.error
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": error.message,
                "details": str(error.cause) if error.cause else None,
            },
        )

    output = result.output
    return {
        "success": True,
        "jobId": output.job.job_id,
        "streamId": output.stream_entry.stream_id if output.stream_entry else None,
        "applicationId": output.application.application_id if output.application else None,
        "message": f"Successfully ingested job: {output.job.title}",
    }

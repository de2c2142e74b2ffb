"""
Cron trigger endpoints.

Each route enqueues a background workflow run and answers 202 immediately;
the run's outcome is only logged. Authenticated with X-API-Key.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pipeline.steps.status import JobStatusInput
from pipeline.workflow import WorkflowRun
from pipeline.workflows import SYSTEM_PROFILE, JobDiscoveryInput
from security.auth import API_KEY_HEADER, AuthError, authenticate_api_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/cron", tags=["cron"])


class JobStatusCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    batch_size: int = Field(default=100, alias="batchSize", gt=0)
    older_than_days: int = Field(default=7, alias="olderThanDays", ge=0)


class JobDiscoveryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_id: Optional[str] = Field(default=None, alias="sourceId")


def _rejected(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"accepted": False, "error": error})


async def _parse_body(request: Request, model):
    """Empty body means all defaults. Raises ValueError with a client-facing message."""
    raw = await request.body()
    if not raw.strip():
        return model()
    try:
        return model.model_validate(json.loads(raw.decode("utf-8")))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid request body: {e.msg}")
    except UnicodeDecodeError as e:
        raise ValueError(f"Invalid request body: not UTF-8 ({e.reason} at byte {e.start})")
    except ValidationError as e:
        errors = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ValueError(f"Invalid request body: {errors}")


def _accepted(run_id: str, workflow: str, message: str) -> JSONResponse:
    logger.info(f"[cron] {message} (runId={run_id})")
    return JSONResponse(
        status_code=202,
        content={"accepted": True, "runId": run_id, "workflow": workflow, "message": message},
    )


@router.post("/job-status-check")
async def job_status_check(request: Request):
    services = request.app.state.services
    try:
        authenticate_api_key(request.headers.get(API_KEY_HEADER), services.api_keys)
    except AuthError as e:
        return _rejected(401, e.message)

    try:
        body = await _parse_body(request, JobStatusCheckRequest)
    except ValueError as e:
        return _rejected(400, str(e))

    workflow = services.status_workflow
    run_id = workflow.send(WorkflowRun(
        input=JobStatusInput(batch_size=body.batch_size, older_than_days=body.older_than_days),
        profile_id=SYSTEM_PROFILE,
    ))
    return _accepted(
        run_id,
        workflow.name,
        f"Job status check workflow started with batchSize={body.batch_size}, "
        f"olderThanDays={body.older_than_days}",
    )


@router.post("/job-discovery")
async def job_discovery(request: Request):
    services = request.app.state.services
    try:
        authenticate_api_key(request.headers.get(API_KEY_HEADER), services.api_keys)
    except AuthError as e:
        return _rejected(401, e.message)

    try:
        body = await _parse_body(request, JobDiscoveryRequest)
    except ValueError as e:
        return _rejected(400, str(e))

    workflow = services.discovery_workflow
    run_id = workflow.send(WorkflowRun(input=JobDiscoveryInput(source_id=body.source_id), profile_id=SYSTEM_PROFILE))
    return _accepted(
        run_id,
        workflow.name,
        f"Job discovery workflow started for {body.source_id or 'all sources'}",
    )

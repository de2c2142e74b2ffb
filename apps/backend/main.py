from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from contextlib import asynccontextmanager
import os
import logging
import traceback

load_dotenv()

from app.config import AppConfig, Capabilities, get_env_presence, is_dev_mode
from app.cron import router as cron_router
from app.jobs import router as jobs_router
from app.rate_limit import limiter
from app.services import build_services
from slowapi.errors import RateLimitExceeded
from slowapi import _rate_limit_exceeded_handler

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire services from the environment and run the workflow workers."""
    arcata_env = os.getenv("ARCATA_ENV", "production").lower()
    logger.info(f"[arcata] env: ARCATA_ENV={arcata_env}")

    config = AppConfig.from_env()
    services = build_services(config)
    app.state.services = services
    services.start()
    logger.info("[arcata] Workflow workers started")

    yield

    services.stop()
    logger.info("[arcata] Workflow workers stopped")


app = FastAPI(title="Arcata API", version="1.0.0", lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.middleware("http")
async def error_masking_middleware(request: Request, call_next):
    """Mask detailed errors in production; show full errors in dev."""
    try:
        return await call_next(request)
    except HTTPException:
        raise
    except Exception as e:
        is_dev = is_dev_mode()

        logger.error(f"Unhandled error: {str(e)}")
        if is_dev:
            logger.error(traceback.format_exc())
            return JSONResponse(
                status_code=500,
                content={
                    "status": "error",
                    "error": str(e),
                    "traceback": traceback.format_exc()
                }
            )
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "error": "An internal error occurred. Please try again later."
            }
        )


app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "https://*.vercel.app",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(jobs_router)
app.include_router(cron_router)


@app.get("/api/healthz")
async def healthz():
    return Capabilities.get_status()


@app.get("/admin/config/env")
async def env_presence():
    """Which configuration variables are set (never their values). Dev only."""
    if not is_dev_mode():
        raise HTTPException(status_code=403, detail="Dev mode only")
    return get_env_presence()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "4203")),
    )

"""
ReportFlow — Academic report authoring and review workflow.
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv

# Load environment before the routers read their settings.
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.errors import ReportFlowError
from core.grading import get_all_grade_thresholds
from routes.authoring import router as authoring_router
from routes.reports import router as reports_router
from routes.roster import router as roster_router

INSTITUTION_NAME = os.getenv("INSTITUTION_NAME", "My Institution")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("reportflow")

app = FastAPI(
    title="ReportFlow API",
    description=(
        "Academic reports with charts, rendered to PDF and routed "
        "teacher → HOD → principal for approval."
    ),
    version="1.0.0",
)

# CORS: the web client runs on its own origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReportFlowError)
async def reportflow_error_handler(request: Request, exc: ReportFlowError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Register route modules
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])
app.include_router(roster_router, prefix="/api/roster", tags=["Roster"])
app.include_router(authoring_router, prefix="/api/authoring", tags=["Authoring"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "institution_name": INSTITUTION_NAME,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "institution_name": INSTITUTION_NAME,
        "grade_thresholds": get_all_grade_thresholds(),
    }

"""
Lab Report Biomarker Analysis - Main FastAPI Application.

Routes are organized in modular files under backend/api/:
- analysis.py: Biomarker extraction and range matching
- telemetry.py: Batch metrics
- benchmarks.py: Biomarker taxonomy
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.api.analysis import router as analysis_router
from backend.api.benchmarks import router as benchmarks_router
from backend.api.telemetry import router as telemetry_router
from backend.core.config import get_settings
from workers.extraction.taxonomy import get_taxonomy

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(
    title="Lab Report Biomarker Analysis",
    description="Biomarker extraction from lab reports with optimal-range comparison",
    version="2.1.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    """Load the biomarker taxonomy before the first request."""
    taxonomy = get_taxonomy()
    logger.info(f"Using Gemini model {settings.gemini.model}, taxonomy v{taxonomy.version}")


# =============================================================================
# Include Routers
# =============================================================================

# All routes are prefixed with /api/v1
app.include_router(analysis_router, prefix="/api/v1")
app.include_router(telemetry_router, prefix="/api/v1")
app.include_router(benchmarks_router, prefix="/api/v1")


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "2.1.0"}


@app.get("/api/v1/health")
def api_health_check():
    """API health check."""
    return {"status": "healthy", "api_version": "v1"}

"""
API Route modules.

- analysis: Run documents through extraction and range matching
- telemetry: Batch metrics
- benchmarks: Biomarker taxonomy
"""

from backend.api.analysis import router as analysis_router
from backend.api.telemetry import router as telemetry_router
from backend.api.benchmarks import router as benchmarks_router

__all__ = [
    'analysis_router',
    'telemetry_router',
    'benchmarks_router',
]

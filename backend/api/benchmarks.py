"""
Benchmark Routes - the biomarker taxonomy in use.
"""

from typing import Optional

from fastapi import APIRouter, Query

from workers.extraction.taxonomy import get_taxonomy

router = APIRouter(tags=["Benchmarks"])


@router.get("/benchmarks")
def list_benchmarks(category: Optional[str] = Query(None, description="Filter by category")):
    """List benchmark entries with their ranges, units and aliases."""
    taxonomy = get_taxonomy()
    entries = [
        {**entry.to_dict(), "display_name": taxonomy.display_name(entry.name)}
        for entry in taxonomy.benchmarks
        if category is None or entry.category.lower() == category.lower()
    ]
    return {
        "version": taxonomy.version,
        "count": len(entries),
        "benchmarks": entries,
    }

"""
Analysis Routes - run a set of lab documents through extraction and range matching.
"""

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from workers.extraction.errors import AllFilesFailedError, NoProcessableDocumentsError
from workers.extraction.pipeline import LabAnalysisPipeline
from workers.extraction.schemas import RawDocument

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Analysis"])


class DocumentIn(BaseModel):
    file_name: str
    extracted_text: str = ""
    page_images: List[str] = Field(default_factory=list, description="Base64 page images")
    is_image: bool = False
    mime_type: str = "application/pdf"
    page_count: int = Field(1, ge=1)

    def to_raw(self) -> RawDocument:
        return RawDocument(
            file_name=self.file_name,
            extracted_text=self.extracted_text,
            page_images=list(self.page_images),
            is_image=self.is_image,
            mime_type=self.mime_type,
            page_count=self.page_count,
        )


class AnalyzeRequest(BaseModel):
    documents: List[DocumentIn] = Field(..., min_length=1)
    gender: Optional[Literal["male", "female"]] = None


# Global pipeline instance
_pipeline: Optional[LabAnalysisPipeline] = None


def get_pipeline() -> LabAnalysisPipeline:
    """Dependency: shared pipeline (the Gemini client is created on first use)."""
    global _pipeline
    if _pipeline is None:
        _pipeline = LabAnalysisPipeline()
    return _pipeline


@router.post("/analyze")
async def analyze_documents(
    request: AnalyzeRequest,
    pipeline: LabAnalysisPipeline = Depends(get_pipeline),
) -> Dict[str, Any]:
    """
    Extract biomarkers from the uploaded documents and compare them to
    the optimal ranges.

    Returns one row per benchmark, plus skipped files, per-file failures
    and consolidated patient info.
    """
    documents = [doc.to_raw() for doc in request.documents]

    try:
        result = await pipeline.analyze(documents, gender=request.gender)
    except NoProcessableDocumentsError as e:
        raise HTTPException(status_code=422, detail={
            "message": str(e),
            "skipped": [{"file_name": name, "reason": reason} for name, reason in e.skipped],
        })
    except AllFilesFailedError as e:
        logger.error(f"Analysis failed for all files: {e}")
        raise HTTPException(status_code=502, detail={
            "message": str(e),
            "failures": e.failures,
        })

    return {
        "results": [asdict(r) for r in result.results],
        "summary": asdict(result.summary),
        "unmatched": [asdict(u) for u in result.unmatched],
        "skipped": [{"file_name": name, "reason": reason} for name, reason in result.skipped],
        "failures": result.failures,
        "patient_info": asdict(result.patient_info),
        "patient_discrepancies": result.patient_discrepancies,
        "patient_confidence": result.patient_confidence,
        "gender": result.gender,
        "panel_names": result.panel_names,
        "batches": result.batches,
        "processed_files": result.processed_files,
        "processing_time_ms": round(result.processing_time),
    }

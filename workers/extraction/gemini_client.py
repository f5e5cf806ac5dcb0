"""
Gemini extraction client.

Sends one document per call: the extraction prompt plus either the
document text or its page images. Service failures are mapped onto the
ExtractionServiceError hierarchy so the retry policy can tell transient
conditions (429/503/504, timeouts, network) from deterministic ones.
"""

import asyncio
import base64
import logging
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from backend.core.config import get_settings
from workers.extraction.errors import (
    ExtractionServiceError,
    ExtractionTimeoutError,
    NetworkError,
)
from workers.extraction.prompts import get_text_prompt, get_vision_prompt
from workers.extraction.response_parser import parse_extraction_response
from workers.extraction.schemas import ExtractionResponse, RawDocument

logger = logging.getLogger(__name__)
settings = get_settings()

NO_BIOMARKERS_MESSAGE = (
    "No biomarkers found in this document. "
    "Please ensure the file contains laboratory test results."
)

DEFAULT_PAGE_MIME_TYPE = "image/png"


def map_service_error(exc: Exception) -> ExtractionServiceError:
    """Translate SDK and transport exceptions into pipeline errors."""
    if isinstance(exc, (asyncio.TimeoutError, google_exceptions.DeadlineExceeded)):
        return ExtractionTimeoutError(f"Processing timeout: {exc}")
    if isinstance(exc, google_exceptions.GoogleAPICallError):
        status = exc.code if isinstance(exc.code, int) else None
        return ExtractionServiceError(f"Gemini API error: {exc.message}", status_code=status)
    if isinstance(exc, (ConnectionError, OSError)):
        return NetworkError(f"Network error: {exc}")
    return ExtractionServiceError(f"Gemini API error: {exc}")


class GeminiExtractionClient:
    """
    Biomarker extraction through the Gemini API.

    Usage:
        client = GeminiExtractionClient()
        response = await client.extract(doc)
    """

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self._configure_gemini(api_key or settings.gemini.api_key)
        self.model_name = model_name or settings.gemini.model
        self.model = genai.GenerativeModel(self.model_name)
        self.request_timeout = settings.gemini.request_timeout
        self.generation_config = {
            "temperature": 0.0,
            "max_output_tokens": settings.gemini.max_output_tokens,
        }

    def _configure_gemini(self, api_key: Optional[str]) -> None:
        """Configure Gemini API with API key from settings."""
        if not api_key:
            raise ValueError(
                "GEMINI_API_KEY not set. Please set the GEMINI__API_KEY environment variable "
                "or add it to your .env file."
            )
        genai.configure(api_key=api_key)

    def build_request(self, doc: RawDocument) -> List[Any]:
        """Prompt plus text, or prompt plus page image blobs."""
        if doc.page_images:
            mime_type = doc.mime_type if doc.is_image else DEFAULT_PAGE_MIME_TYPE
            parts: List[Any] = [get_vision_prompt()]
            for page in doc.page_images:
                parts.append({"mime_type": mime_type, "data": base64.b64decode(page)})
            return parts

        return [get_text_prompt(doc.file_name, doc.page_count, doc.extracted_text)]

    async def extract(self, doc: RawDocument) -> ExtractionResponse:
        """
        Extract patient info and biomarkers from one document.

        Raises:
            ExtractionServiceError: mapped service failure, 422 when the
                response is unparseable or holds no biomarkers
        """
        parts = self.build_request(doc)
        logger.info(
            f"Extracting {doc.file_name} with {self.model_name} "
            f"({'vision' if doc.page_images else 'text'}, {len(parts)} parts)"
        )

        try:
            response = await self.model.generate_content_async(
                parts,
                generation_config=self.generation_config,
                request_options={"timeout": self.request_timeout},
            )
        except ExtractionServiceError:
            raise
        except Exception as e:
            mapped = map_service_error(e)
            logger.warning(f"{doc.file_name}: {mapped}")
            raise mapped from e

        try:
            text = response.text
        except ValueError as e:
            # Raised by the SDK when the candidate was blocked or empty
            raise ExtractionServiceError(f"No text response from Gemini: {e}", status_code=422) from e

        result = parse_extraction_response(text, doc.file_name)

        if not result.biomarkers:
            logger.warning(f"{doc.file_name}: Gemini returned 0 biomarkers")
            raise ExtractionServiceError(NO_BIOMARKERS_MESSAGE, status_code=422)

        logger.info(f"{doc.file_name}: {len(result.biomarkers)} biomarkers [{result.panel_name}]")
        return result

    def get_stats(self) -> Dict[str, Any]:
        return {
            "model": self.model_name,
            "request_timeout": self.request_timeout,
        }

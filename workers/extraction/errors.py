"""Exceptions raised by the lab extraction pipeline."""

from typing import Any, Dict, List, Optional, Tuple

# Statuses that signal a transient condition on the extraction service side.
RETRYABLE_STATUS_CODES = frozenset({429, 503, 504})


class LabExtractionError(Exception):
    """Base exception for all lab extraction errors."""
    pass


# Admission

class DocumentRejectedError(LabExtractionError):
    """A document was refused before it reached the extraction service."""

    def __init__(self, file_name: str, reason: str):
        self.file_name = file_name
        self.reason = reason
        super().__init__(f"{file_name}: {reason}")


class NoProcessableDocumentsError(LabExtractionError):
    """Every input document was rejected at admission."""

    def __init__(self, skipped: List[Tuple[str, str]]):
        self.skipped = skipped
        super().__init__(
            f"No processable documents ({len(skipped)} skipped)"
        )


# Extraction service

class ExtractionServiceError(LabExtractionError):
    """Error returned by (or while talking to) the extraction service."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        attempts: int = 1,
    ):
        self.message = message
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES

    def __str__(self) -> str:
        text = self.message
        if self.status_code is not None:
            text = f"[{self.status_code}] {text}"
        if self.attempts > 1:
            text = f"{text} (after {self.attempts} attempts)"
        return text


class ExtractionTimeoutError(ExtractionServiceError):
    """An extraction attempt exceeded its time budget."""

    def __init__(self, message: str = "Extraction timed out", attempts: int = 1):
        super().__init__(message, status_code=504, attempts=attempts)

    @property
    def retryable(self) -> bool:
        return True


class NetworkError(ExtractionServiceError):
    """Transport-level failure reaching the extraction service."""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message, status_code=None, attempts=attempts)

    @property
    def retryable(self) -> bool:
        return True


class AllFilesFailedError(LabExtractionError):
    """No file in the whole run produced an extraction."""

    def __init__(self, failures: List[Dict[str, Any]]):
        self.failures = failures
        super().__init__(f"All {len(failures)} files failed extraction")

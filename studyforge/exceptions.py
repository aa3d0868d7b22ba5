"""
Error taxonomy for the ingestion pipeline and the generation engine.

Routers translate these into HTTP responses; the pipeline maps their messages
to user-facing failure reasons before persisting a failed status.
"""

from typing import Optional


class StudyForgeError(Exception):
    """Base class for every error raised by the service."""


# ─── Ingestion ────────────────────────────────────────────────────────────────

class UnsupportedFormat(StudyForgeError):
    """The declared MIME type / extension has no extractor."""

    def __init__(self, mime_type: str):
        self.mime_type = mime_type
        super().__init__(f"Unsupported file type: {mime_type}")


class ExtractionFailed(StudyForgeError):
    """A document library could not read the file."""


class OcrFailed(StudyForgeError):
    """Rasterisation or recognition failed for the whole document."""


class InsufficientContent(StudyForgeError):
    """Not enough text to segment or to generate from."""


class DownloadFailed(StudyForgeError):
    """The source file could not be fetched."""


class PipelineFailed(StudyForgeError):
    """
    Terminal pipeline failure.

    `reason` is the user-facing message persisted on the material;
    `technical` keeps the underlying error text for logs and support.
    """

    def __init__(self, reason: str, technical: str):
        self.reason = reason
        self.technical = technical
        super().__init__(reason)


# ─── Generation ───────────────────────────────────────────────────────────────

class LLMUnavailable(StudyForgeError):
    """The language model could not be reached after all transport retries."""

    def __init__(self, message: str, attempts: int = 0):
        self.attempts = attempts
        super().__init__(message)


class ValidationFailed(StudyForgeError):
    """Model output could not be parsed into the expected shape."""


class GenerationFailed(StudyForgeError):
    """Every generation attempt produced zero usable items."""

    def __init__(self, message: str, attempts: int = 0, last_error: Optional[str] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message)


# ─── Material lookups ─────────────────────────────────────────────────────────

class MaterialNotFound(StudyForgeError):
    def __init__(self, material_id: str):
        self.material_id = material_id
        super().__init__(f"Material not found: {material_id}")


class StillProcessing(StudyForgeError):
    """The material is mid-pipeline; generation must wait."""

    def __init__(self, material_id: str, status: str):
        self.material_id = material_id
        self.status = status
        super().__init__(
            f"Material {material_id} is still being processed (status={status}). "
            "Please try again in a moment."
        )


class UnsupportedDocument(StudyForgeError):
    """Processing failed for good; the document cannot be used for study."""

    def __init__(self, material_id: str, reason: Optional[str] = None):
        self.material_id = material_id
        self.reason = reason
        super().__init__(reason or "This document could not be processed for study features.")

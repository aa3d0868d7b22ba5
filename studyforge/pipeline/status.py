"""
Processing status and retry.
"""

import logging
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from studyforge.database import crud
from studyforge.database.models import ProcessingStatus
from studyforge.exceptions import MaterialNotFound
from .queue import DocumentJob, JobQueue

log = logging.getLogger(__name__)

RETRYABLE_STATUSES = (ProcessingStatus.FAILED, ProcessingStatus.PENDING)


class ProcessingStatusResponse(BaseModel):
    material_id: str
    processing_status: str
    segment_count: int
    is_ready: bool
    can_retry: bool
    failure_reason: Optional[str] = None
    processing_version: Optional[str] = None
    is_ocr_processed: bool = False
    ocr_confidence: Optional[float] = None


class RetryResult(BaseModel):
    success: bool
    message: str
    job_id: Optional[str] = None


def get_processing_status(db: Session, material_id: str) -> ProcessingStatusResponse:
    """Unknown materials report as failed and not retryable"""
    material = crud.get_material(db, material_id)
    if material is None:
        return ProcessingStatusResponse(
            material_id=material_id,
            processing_status=ProcessingStatus.FAILED.value,
            segment_count=0,
            is_ready=False,
            can_retry=False,
            failure_reason="Material not found",
        )

    status = ProcessingStatus(material.processing_status)
    segment_count = crud.count_segments(db, material_id)
    return ProcessingStatusResponse(
        material_id=material_id,
        processing_status=status.value,
        segment_count=segment_count,
        is_ready=status == ProcessingStatus.COMPLETED and segment_count > 0,
        can_retry=status in RETRYABLE_STATUSES,
        failure_reason=material.failure_reason,
        processing_version=material.processing_version.value if material.processing_version else None,
        is_ocr_processed=bool(material.is_ocr_processed),
        ocr_confidence=material.ocr_confidence,
    )


def get_segment_count(db: Session, material_id: str) -> int:
    return crud.count_segments(db, material_id)


def retry_processing(db: Session, queue: JobQueue, material_id: str) -> RetryResult:
    """Reset a failed/pending material and queue it again from its source file"""
    material = crud.get_material(db, material_id)
    if material is None:
        raise MaterialNotFound(material_id)

    status = ProcessingStatus(material.processing_status)
    if status not in RETRYABLE_STATUSES:
        return RetryResult(success=False, message=f"Cannot retry: material is currently {status.value}")
    if not material.file_url:
        return RetryResult(success=False, message="Cannot retry: material has no source file")

    crud.delete_segments(db, material_id)
    crud.reset_for_retry(db, material_id)
    job_id = queue.enqueue_document(DocumentJob(
        material_id=material_id,
        file_url=material.file_url,
        mime_type=material.file_type or "",
        filename=material.filename or material.title,
    ))
    log.info("Retry: material=%s requeued job=%s", material_id, job_id)
    return RetryResult(success=True, message="Processing restarted", job_id=job_id)

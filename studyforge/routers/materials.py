"""
Material records: registration of uploaded files and content edits.

Uploading and signing URLs happen elsewhere; this router receives the stored
file's URL and queues processing.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from studyforge.database import crud
from studyforge.database.database import get_db
from studyforge.database.models import ProcessingVersion
from studyforge.ingestion.extractor import detect_file_type
from studyforge.exceptions import UnsupportedFormat
from studyforge.pipeline.queue import DocumentJob, JobQueue
from .deps import get_job_queue

router = APIRouter(prefix="/materials", tags=["materials"])


class MaterialCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    file_url: str
    mime_type: str
    filename: Optional[str] = None
    legacy: bool = Field(False, description="Process with the v1 single-pass extractor")


class ContentUpdate(BaseModel):
    content: str


class MaterialResponse(BaseModel):
    id: str
    title: str
    filename: Optional[str] = None
    file_type: Optional[str] = None
    processing_status: str
    processing_version: str
    material_version: int
    is_ocr_processed: bool
    ocr_confidence: Optional[float] = None
    failure_reason: Optional[str] = None
    tags: Optional[List[str]] = None


def _to_response(material) -> MaterialResponse:
    return MaterialResponse(
        id=material.id,
        title=material.title,
        filename=material.filename,
        file_type=material.file_type,
        processing_status=material.processing_status.value,
        processing_version=material.processing_version.value,
        material_version=material.material_version,
        is_ocr_processed=bool(material.is_ocr_processed),
        ocr_confidence=material.ocr_confidence,
        failure_reason=material.failure_reason,
        tags=material.tags,
    )


@router.post("/", response_model=MaterialResponse, status_code=status.HTTP_202_ACCEPTED)
def create_material(
    body: MaterialCreate,
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_job_queue),
):
    """Register an uploaded file and queue it for processing"""
    try:
        detect_file_type(body.mime_type, body.filename)
    except UnsupportedFormat as e:
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=str(e))

    material = crud.create_material(
        db,
        title=body.title,
        file_url=body.file_url,
        file_type=body.mime_type,
        filename=body.filename,
        processing_version=ProcessingVersion.V1 if body.legacy else ProcessingVersion.V2,
    )
    job = DocumentJob(
        material_id=material.id,
        file_url=body.file_url,
        mime_type=body.mime_type,
        filename=body.filename or body.title,
    )
    if body.legacy:
        queue.enqueue_legacy(job)
    else:
        queue.enqueue_document(job)
    return _to_response(material)


@router.get("/{material_id}", response_model=MaterialResponse)
def get_material(material_id: str, db: Session = Depends(get_db)):
    material = crud.get_material(db, material_id)
    if not material:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Material not found")
    return _to_response(material)


@router.put("/{material_id}/content", response_model=MaterialResponse)
def update_content(material_id: str, body: ContentUpdate, db: Session = Depends(get_db)):
    """Edit canonical content; cached quizzes and flashcards become stale"""
    if not crud.get_material(db, material_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Material not found")
    crud.update_content(db, material_id, body.content)
    return _to_response(crud.get_material(db, material_id))


@router.delete("/{material_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_material(material_id: str, db: Session = Depends(get_db)):
    if not crud.delete_material(db, material_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Material not found")

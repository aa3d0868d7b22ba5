"""
Processing status, segment count and retry.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from studyforge.database import crud
from studyforge.database.database import get_db
from studyforge.exceptions import MaterialNotFound
from studyforge.pipeline.queue import DocumentJob, JobQueue
from studyforge.pipeline.status import (
    ProcessingStatusResponse,
    RetryResult,
    get_processing_status,
    get_segment_count,
    retry_processing,
)
from .deps import get_job_queue

router = APIRouter(prefix="/processing", tags=["processing"])


@router.post("/jobs", status_code=status.HTTP_202_ACCEPTED)
def submit_job(job: DocumentJob, db: Session = Depends(get_db), queue: JobQueue = Depends(get_job_queue)):
    """Queue a process-document job for an existing material"""
    if not crud.get_material(db, job.material_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Material not found")
    return {"job_id": queue.enqueue_document(job), "material_id": job.material_id}


@router.get("/{material_id}/status", response_model=ProcessingStatusResponse)
def processing_status(material_id: str, db: Session = Depends(get_db)):
    return get_processing_status(db, material_id)


@router.get("/{material_id}/segments/count")
def segment_count(material_id: str, db: Session = Depends(get_db)):
    return {"material_id": material_id, "segment_count": get_segment_count(db, material_id)}


@router.post("/{material_id}/retry", response_model=RetryResult)
def retry(material_id: str, db: Session = Depends(get_db), queue: JobQueue = Depends(get_job_queue)):
    try:
        result = retry_processing(db, queue, material_id)
    except MaterialNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if not result.success:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.message)
    return result

"""
CRUD operations for materials and segments
All database operations go through these functions

Material mutations are single-row UPDATE statements so that concurrent
pipeline stages and generation requests never overwrite each other's
columns with stale values read earlier.
"""

from sqlalchemy.orm import Session
from typing import Iterable, List, Optional
from studyforge.database import models
from studyforge.database.models import Material, DocumentSegment, ProcessingStatus, ProcessingVersion, SegmentSource
from studyforge.ingestion.schemas import TextSegment

SEGMENT_INSERT_BATCH = 100


# ==========================================
# MATERIAL CRUD
# ==========================================

def create_material(
    db: Session,
    title: str,
    file_url: Optional[str] = None,
    file_type: Optional[str] = None,
    filename: Optional[str] = None,
    content: Optional[str] = None,
    processing_version: ProcessingVersion = ProcessingVersion.V2,
) -> Material:
    """Create a new material in the pending state"""
    db_material = Material(
        title=title,
        file_url=file_url,
        file_type=file_type,
        filename=filename,
        content=content,
        processing_version=processing_version,
        processing_status=ProcessingStatus.PENDING,
    )
    db.add(db_material)
    db.commit()
    db.refresh(db_material)
    return db_material


def get_material(db: Session, material_id: str) -> Optional[Material]:
    """Get material by ID"""
    return db.query(Material).filter(Material.id == material_id).first()


def delete_material(db: Session, material_id: str) -> bool:
    """Delete a material; its segments go with it"""
    db_material = get_material(db, material_id)
    if not db_material:
        return False
    db.delete(db_material)
    db.commit()
    return True


def _update_material(db: Session, material_id: str, values: dict, *conditions) -> int:
    """Single-row UPDATE; returns the number of rows changed (0 or 1)"""
    query = db.query(Material).filter(Material.id == material_id, *conditions)
    changed = query.update(values, synchronize_session=False)
    db.commit()
    return changed


def set_processing_status(db: Session, material_id: str, status: ProcessingStatus) -> None:
    _update_material(db, material_id, {"processing_status": status})


def mark_failed(db: Session, material_id: str, reason: str, technical: str) -> None:
    """Persist a terminal failure with its user-facing reason and technical detail"""
    _update_material(db, material_id, {
        "processing_status": ProcessingStatus.FAILED,
        "failure_reason": reason,
        "processing_error": technical,
    })


def reset_for_retry(db: Session, material_id: str) -> None:
    _update_material(db, material_id, {
        "processing_status": ProcessingStatus.PENDING,
        "failure_reason": None,
        "processing_error": None,
    })


def complete_processing(
    db: Session,
    material_id: str,
    content: str,
    is_ocr_processed: bool,
    ocr_confidence: Optional[float],
    processing_version: ProcessingVersion = ProcessingVersion.V2,
) -> None:
    """
    Store the cleaned content and mark the material completed.
    Writing content is a canonical edit, so material_version is bumped.
    """
    _update_material(db, material_id, {
        "content": content,
        "processing_status": ProcessingStatus.COMPLETED,
        "processing_version": processing_version,
        "is_ocr_processed": is_ocr_processed,
        "ocr_confidence": ocr_confidence,
        "failure_reason": None,
        "processing_error": None,
        "material_version": Material.material_version + 1,
    })


def update_content(db: Session, material_id: str, content: str) -> None:
    """Edit canonical content; invalidates cached quizzes and flashcards"""
    _update_material(db, material_id, {
        "content": content,
        "material_version": Material.material_version + 1,
    })


def claim_upgrade(db: Session, material_id: str) -> bool:
    """
    Move a v1 material to pending so exactly one upgrade job gets enqueued.
    Returns False when another request already claimed it.
    """
    changed = _update_material(
        db,
        material_id,
        {"processing_status": ProcessingStatus.PENDING},
        Material.processing_version == ProcessingVersion.V1,
        Material.processing_status != ProcessingStatus.PENDING,
    )
    return changed == 1


def set_tags(db: Session, material_id: str, tags: List[str]) -> None:
    _update_material(db, material_id, {"tags": tags})


# ==========================================
# GENERATION CACHES
# ==========================================

def store_quiz_cache(db: Session, material_id: str, questions: list, version: int) -> bool:
    """
    Cache a full-document quiz stamped with the version it was built from.
    Skipped (returns False) if the material was edited since.
    """
    changed = _update_material(
        db,
        material_id,
        {"quiz": questions, "quiz_generated_version": version},
        Material.material_version == version,
    )
    return changed == 1


def store_flashcard_cache(db: Session, material_id: str, flashcards: list, version: int) -> bool:
    changed = _update_material(
        db,
        material_id,
        {"flashcards": flashcards, "flashcard_generated_version": version},
        Material.material_version == version,
    )
    return changed == 1


# ==========================================
# SEGMENT CRUD
# ==========================================

def get_segments(db: Session, material_id: str) -> List[DocumentSegment]:
    """All segments of a material in index order"""
    return (
        db.query(DocumentSegment)
        .filter(DocumentSegment.material_id == material_id)
        .order_by(DocumentSegment.segment_index)
        .all()
    )


def count_segments(db: Session, material_id: str) -> int:
    return db.query(DocumentSegment).filter(DocumentSegment.material_id == material_id).count()


def delete_segments(db: Session, material_id: str) -> int:
    deleted = (
        db.query(DocumentSegment)
        .filter(DocumentSegment.material_id == material_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def replace_segments(
    db: Session,
    material_id: str,
    segments: Iterable[TextSegment],
    source: SegmentSource = SegmentSource.TEXT,
) -> int:
    """
    Replace the whole segment set of a material in one transaction.
    Readers see either the old set or the new one, never a mix.
    """
    segments = list(segments)
    try:
        db.query(DocumentSegment).filter(
            DocumentSegment.material_id == material_id
        ).delete(synchronize_session=False)
        for start in range(0, len(segments), SEGMENT_INSERT_BATCH):
            db.add_all([
                models.DocumentSegment(
                    material_id=material_id,
                    segment_index=seg.segment_index,
                    text=seg.text,
                    token_count=seg.token_count,
                    page_start=seg.page_start,
                    page_end=seg.page_end,
                    heading=seg.heading[:500] if seg.heading else None,
                    source=source,
                )
                for seg in segments[start:start + SEGMENT_INSERT_BATCH]
            ])
            db.flush()
        db.commit()
    except Exception:
        db.rollback()
        raise
    return len(segments)

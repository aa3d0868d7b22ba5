"""
SQLAlchemy models for study materials
Material → DocumentSegment

A Material's segments are the unit of retrieval for quiz and flashcard
generation. Cached quizzes/flashcards are stamped with the material_version
they were generated from; bumping material_version invalidates them.
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text, Float, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum
from studyforge.database.database import Base


class ProcessingStatus(str, enum.Enum):
    """Pipeline state persisted after every transition"""
    PENDING = "pending"
    EXTRACTING = "extracting"
    OCR_EXTRACTING = "ocr_extracting"
    CLEANING = "cleaning"
    SEGMENTING = "segmenting"
    COMPLETED = "completed"
    FAILED = "failed"


# States in which a material must not be used for generation
IN_PROGRESS_STATUSES = (
    ProcessingStatus.EXTRACTING,
    ProcessingStatus.OCR_EXTRACTING,
    ProcessingStatus.CLEANING,
    ProcessingStatus.SEGMENTING,
)


class ProcessingVersion(str, enum.Enum):
    """v1 = legacy single-pass content, v2 = segment based"""
    V1 = "v1"
    V2 = "v2"


class SegmentSource(str, enum.Enum):
    TEXT = "text"
    OCR = "ocr"


def _new_id() -> str:
    return str(uuid.uuid4())


# ==========================================
# MATERIALS
# ==========================================

class Material(Base):
    """
    An uploaded study document.
    content holds the cleaned text once processing completes.
    quiz / flashcards are caches keyed by *_generated_version.
    """
    __tablename__ = "materials"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(500), nullable=False)
    file_url = Column(Text, nullable=True)
    filename = Column(String(500), nullable=True)  # original upload name, used for type detection
    file_type = Column(String(255), nullable=True)  # declared MIME type
    content = Column(Text, nullable=True)

    processing_status = Column(
        SQLEnum(ProcessingStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=ProcessingStatus.PENDING,
        nullable=False,
        index=True,
    )
    processing_version = Column(
        SQLEnum(ProcessingVersion, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=ProcessingVersion.V2,
        nullable=False,
    )
    material_version = Column(Integer, default=1, nullable=False)

    quiz = Column(JSON, nullable=True)
    quiz_generated_version = Column(Integer, nullable=True)
    flashcards = Column(JSON, nullable=True)
    flashcard_generated_version = Column(Integer, nullable=True)

    is_ocr_processed = Column(Boolean, default=False, nullable=False)
    ocr_confidence = Column(Float, nullable=True)
    failure_reason = Column(Text, nullable=True)     # shown to users
    processing_error = Column(Text, nullable=True)   # technical detail
    tags = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    segments = relationship(
        "DocumentSegment",
        back_populates="material",
        cascade="all, delete-orphan",
        order_by="DocumentSegment.segment_index",
    )

    def __repr__(self):
        return (
            f"<Material(id='{self.id}', title='{self.title}', "
            f"status='{self.processing_status}', version={self.material_version})>"
        )


# ==========================================
# DOCUMENT SEGMENTS
# ==========================================

class DocumentSegment(Base):
    """
    A contiguous slice of a material's cleaned text.
    segment_index is contiguous from 0; the set is always replaced as a whole.
    """
    __tablename__ = "document_segments"

    id = Column(String(36), primary_key=True, default=_new_id)
    material_id = Column(String(36), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False, index=True)
    segment_index = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)
    token_count = Column(Integer, nullable=False)
    page_start = Column(Integer, nullable=True)
    page_end = Column(Integer, nullable=True)
    heading = Column(String(500), nullable=True)
    source = Column(
        SQLEnum(SegmentSource, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=SegmentSource.TEXT,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    material = relationship("Material", back_populates="segments")

    def __repr__(self):
        return (
            f"<DocumentSegment(material_id='{self.material_id}', index={self.segment_index}, "
            f"pages={self.page_start}-{self.page_end}, tokens={self.token_count})>"
        )

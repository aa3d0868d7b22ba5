"""
Quiz and flashcard requests for a material.

Decides between the version-stamped cache, a lazy v1 → v2 upgrade,
segment-based generation and the content-based fallback, then caches
full-document results.
"""

import logging
from typing import Optional, Union

from sqlalchemy.orm import Session

from studyforge.database import crud
from studyforge.database.models import IN_PROGRESS_STATUSES, Material, ProcessingStatus, ProcessingVersion
from studyforge.exceptions import InsufficientContent, MaterialNotFound, StillProcessing, UnsupportedDocument
from studyforge.pipeline.queue import JobQueue
from studyforge.pipeline.upgrade import request_upgrade
from .generators import FlashcardGenerator, QuizGenerator
from .schemas import (
    DEFAULT_FLASHCARD_COUNT,
    DEFAULT_QUESTION_COUNT,
    FlashcardResult,
    GenerationRequest,
    QuizResult,
    UpgradingResult,
)
from .segment_selector import SegmentSelector, SelectionOptions

log = logging.getLogger(__name__)

# Page slicing for materials that only have flat content
CHARS_PER_PAGE = 3000
MIN_CONTENT_LENGTH = 50


def cache_miss_reason(
    request: GenerationRequest,
    cached: Optional[list],
    cached_version: Optional[int],
    material_version: int,
) -> Optional[str]:
    """None when the cached set can be served as-is"""
    if request.has_page_range:
        return "page-range-specified"
    if request.regenerate:
        return "regenerate-requested"
    if request.topic:
        return "topic-specified"
    if cached is None:
        return "no-cache"
    if len(cached) == 0:
        return "empty-cache"
    if cached_version != material_version:
        return "version-mismatch"
    return None


def slice_content(content: str, page_start: Optional[int], page_end: Optional[int]) -> str:
    start = (page_start - 1) * CHARS_PER_PAGE if page_start else 0
    end = page_end * CHARS_PER_PAGE if page_end else len(content)
    return content[start:end]


class StudyMaterialService:
    def __init__(
        self,
        db: Session,
        queue: JobQueue,
        quiz_generator: QuizGenerator,
        flashcard_generator: FlashcardGenerator,
    ):
        self.db = db
        self.queue = queue
        self.quiz_generator = quiz_generator
        self.flashcard_generator = flashcard_generator

    async def get_quiz(self, material_id: str, request: GenerationRequest) -> Union[QuizResult, UpgradingResult]:
        material = self._load_usable(material_id)
        version = material.material_version

        miss = cache_miss_reason(request, material.quiz, material.quiz_generated_version, version)
        if miss is None:
            log.info("Quiz: cache hit material=%s version=%s", material_id, version)
            return QuizResult(material_id=material_id, cached=True, questions=material.quiz)
        log.info("Quiz: cache miss material=%s reason=%s", material_id, miss)

        upgrading = self._maybe_upgrade(material)
        if upgrading:
            return upgrading

        topic = request.topic or material.title
        count = request.count or DEFAULT_QUESTION_COUNT
        segments, method, content = self._source(material, request)
        quiz = await self.quiz_generator.generate(
            topic, count, request.difficulty, segments=segments, content=content
        )

        if request.is_full_document:
            stored = crud.store_quiz_cache(
                self.db, material_id, [q.model_dump() for q in quiz.questions], version
            )
            if not stored:
                log.info("Quiz: material=%s changed during generation, result not cached", material_id)
        return QuizResult(material_id=material_id, cached=False, questions=quiz.questions, selection_method=method)

    async def get_flashcards(
        self, material_id: str, request: GenerationRequest
    ) -> Union[FlashcardResult, UpgradingResult]:
        material = self._load_usable(material_id)
        version = material.material_version

        miss = cache_miss_reason(request, material.flashcards, material.flashcard_generated_version, version)
        if miss is None:
            log.info("Flashcards: cache hit material=%s version=%s", material_id, version)
            return FlashcardResult(material_id=material_id, cached=True, flashcards=material.flashcards)
        log.info("Flashcards: cache miss material=%s reason=%s", material_id, miss)

        upgrading = self._maybe_upgrade(material)
        if upgrading:
            return upgrading

        topic = request.topic or material.title
        count = request.count or DEFAULT_FLASHCARD_COUNT
        segments, method, content = self._source(material, request)
        cards = await self.flashcard_generator.generate(topic, count, segments=segments, content=content)

        if request.is_full_document:
            crud.store_flashcard_cache(self.db, material_id, [c.model_dump() for c in cards], version)
        return FlashcardResult(material_id=material_id, cached=False, flashcards=cards, selection_method=method)

    # ─── Helpers ──────────────────────────────────────────────────────────

    def _load_usable(self, material_id: str) -> Material:
        material = crud.get_material(self.db, material_id)
        if material is None:
            raise MaterialNotFound(material_id)
        status = ProcessingStatus(material.processing_status)
        version = ProcessingVersion(material.processing_version)
        if status in IN_PROGRESS_STATUSES or (status == ProcessingStatus.PENDING and version == ProcessingVersion.V2):
            raise StillProcessing(material_id, status.value)
        if status == ProcessingStatus.FAILED:
            raise UnsupportedDocument(material_id, material.failure_reason)
        return material

    def _maybe_upgrade(self, material: Material) -> Optional[UpgradingResult]:
        """v1 materials without segments are upgraded instead of generated from"""
        if ProcessingVersion(material.processing_version) != ProcessingVersion.V1:
            return None
        if crud.count_segments(self.db, material.id) > 0:
            return None
        request_upgrade(self.db, self.queue, material.id)
        return UpgradingResult(material_id=material.id)

    def _source(self, material: Material, request: GenerationRequest):
        """(segments, selection method, content): segments when there are any, else flat content"""
        if crud.count_segments(self.db, material.id) > 0:
            selection = SegmentSelector(self.db).select(
                material.id,
                SelectionOptions(topic=request.topic, page_start=request.page_start, page_end=request.page_end),
            )
            if not selection.segments:
                raise InsufficientContent("No content segments available for this request")
            return selection.segments, selection.selection_method, None

        content = material.content or ""
        if request.has_page_range:
            content = slice_content(content, request.page_start, request.page_end)
        if len(content.strip()) < MIN_CONTENT_LENGTH:
            raise InsufficientContent("Material has no usable content")
        return None, "content", content

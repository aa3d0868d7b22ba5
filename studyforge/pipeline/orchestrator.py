"""
Document pipeline orchestrator

pending → extracting → (ocr_extracting) → cleaning → segmenting → completed
Any error moves the material to failed with a user-facing reason.

CONSTRAINTS:
- Every state transition is persisted before the stage starts
- The segment set is replaced in one transaction
- Writing cleaned content bumps material_version (invalidates generation caches)
- Enrichment runs as a separate job and never affects the processing status
"""

import asyncio
import logging
import os
from dataclasses import asdict, dataclass
from typing import Callable, Optional

import httpx
from sqlalchemy.orm import Session

from studyforge.database import crud
from studyforge.database.models import ProcessingStatus, ProcessingVersion, SegmentSource
from studyforge.exceptions import DownloadFailed, InsufficientContent, OcrFailed, PipelineFailed
from studyforge.ingestion.cleaner import clean_text
from studyforge.ingestion.extractor import IMAGE, PDF, DocumentExtractor, estimate_page_boundaries
from studyforge.ingestion.legacy import extract_legacy_content
from studyforge.ingestion.ocr import OcrService, clean_ocr_text
from studyforge.ingestion.segmenter import segment_text
from .failures import failure_reason
from .queue import DocumentJob, JobQueue

log = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_SECONDS = float(os.getenv("DOWNLOAD_TIMEOUT_SECONDS", "60"))
MIN_VIABLE_TEXT_LENGTH = 50


@dataclass
class PipelineOutcome:
    material_id: str
    segment_count: int
    char_count: int
    is_ocr_processed: bool
    ocr_confidence: Optional[float]

    def to_dict(self) -> dict:
        return asdict(self)


class FileDownloader:
    def __init__(self, timeout: float = DOWNLOAD_TIMEOUT_SECONDS):
        self.timeout = timeout

    async def download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.TimeoutException as e:
            raise DownloadFailed(f"Download timed out after {self.timeout}s: {url}") from e
        except httpx.HTTPError as e:
            raise DownloadFailed(f"Failed to download file: {e}") from e


class DocumentPipeline:
    def __init__(
        self,
        db: Session,
        queue: JobQueue,
        extractor: Optional[DocumentExtractor] = None,
        ocr: Optional[OcrService] = None,
        downloader: Optional[FileDownloader] = None,
        on_progress: Optional[Callable[[int], None]] = None,
    ):
        self.db = db
        self.queue = queue
        self.extractor = extractor or DocumentExtractor()
        self.ocr = ocr or OcrService()
        self.downloader = downloader or FileDownloader()
        self.on_progress = on_progress

    # ─── Entry points ─────────────────────────────────────────────────────

    async def process_document(self, job: DocumentJob) -> PipelineOutcome:
        """Full v2 pipeline from the source file"""
        log.info("Pipeline: start material=%s file=%s mime=%s", job.material_id, job.filename, job.mime_type)
        return await self._guard(job.material_id, self._process_document(job))

    async def process_text(
        self,
        material_id: str,
        text: str,
        page_count: int,
        is_ocr: bool = False,
        ocr_confidence: Optional[float] = None,
    ) -> PipelineOutcome:
        """Clean → segment → persist for text that is already extracted (lazy upgrade)"""
        log.info("Pipeline: start from stored text material=%s chars=%s", material_id, len(text))
        return await self._guard(
            material_id, self._finish(material_id, text, page_count, is_ocr, ocr_confidence)
        )

    async def process_legacy(self, job: DocumentJob) -> PipelineOutcome:
        """v1 single pass: content only, no cleaning or segments"""
        log.info("Pipeline (legacy): start material=%s file=%s", job.material_id, job.filename)
        return await self._guard(job.material_id, self._process_legacy(job))

    # ─── Stages ───────────────────────────────────────────────────────────

    async def _process_document(self, job: DocumentJob) -> PipelineOutcome:
        self._set_status(job.material_id, ProcessingStatus.EXTRACTING)
        self._progress(10)

        data = await self.downloader.download(job.file_url)
        self._progress(20)

        extraction = await asyncio.to_thread(self.extractor.extract, data, job.mime_type, job.filename)
        self._progress(40)

        text = extraction.text
        page_count = extraction.page_count
        is_ocr = False
        confidence = None
        if extraction.requires_ocr:
            if extraction.file_type in (PDF, IMAGE):
                self._set_status(job.material_id, ProcessingStatus.OCR_EXTRACTING)
                self._progress(50)
                try:
                    if extraction.file_type == PDF:
                        ocr_result = await self.ocr.extract_from_pdf(data)
                    else:
                        ocr_result = await self.ocr.extract_from_images([data])
                except Exception as e:
                    raise OcrFailed(f"Scanned PDF detected but OCR failed: {e}") from e
                self._progress(60)
                text = ocr_result.text
                page_count = ocr_result.page_count or page_count
                is_ocr = True
                confidence = ocr_result.confidence
            else:
                log.warning(
                    "Pipeline: little text in %s (%s chars), no OCR for this format",
                    job.filename, len(extraction.text.strip()),
                )

        return await self._finish(job.material_id, text, page_count, is_ocr, confidence)

    async def _finish(
        self,
        material_id: str,
        text: str,
        page_count: int,
        is_ocr: bool,
        confidence: Optional[float],
    ) -> PipelineOutcome:
        if len((text or "").strip()) < MIN_VIABLE_TEXT_LENGTH:
            raise InsufficientContent("Extracted text is too short or empty")

        self._set_status(material_id, ProcessingStatus.CLEANING)
        cleaned = clean_text(text)
        if is_ocr:
            cleaned = clean_ocr_text(cleaned)
        if len(cleaned) < MIN_VIABLE_TEXT_LENGTH:
            raise InsufficientContent("Extracted text is too short or empty after cleaning")
        self._progress(70)

        self._set_status(material_id, ProcessingStatus.SEGMENTING)
        pages = estimate_page_boundaries(cleaned, page_count)
        segments = segment_text(cleaned, pages, is_ocr=is_ocr)
        self._progress(80)

        source = SegmentSource.OCR if is_ocr else SegmentSource.TEXT
        crud.replace_segments(self.db, material_id, segments, source=source)
        self._progress(90)

        crud.complete_processing(self.db, material_id, cleaned, is_ocr, confidence)
        self._enqueue_enrichment(material_id)
        self._progress(100)

        log.info(
            "Pipeline: completed material=%s segments=%s chars=%s ocr=%s",
            material_id, len(segments), len(cleaned), is_ocr,
        )
        return PipelineOutcome(
            material_id=material_id,
            segment_count=len(segments),
            char_count=len(cleaned),
            is_ocr_processed=is_ocr,
            ocr_confidence=confidence,
        )

    async def _process_legacy(self, job: DocumentJob) -> PipelineOutcome:
        self._set_status(job.material_id, ProcessingStatus.EXTRACTING)
        data = await self.downloader.download(job.file_url)
        extracted = await extract_legacy_content(data, job.mime_type, job.filename, self.extractor, self.ocr)
        crud.complete_processing(
            self.db,
            job.material_id,
            extracted.text,
            extracted.is_ocr,
            extracted.ocr_confidence,
            processing_version=ProcessingVersion.V1,
        )
        self._enqueue_enrichment(job.material_id)
        log.info("Pipeline (legacy): completed material=%s chars=%s", job.material_id, len(extracted.text))
        return PipelineOutcome(
            material_id=job.material_id,
            segment_count=0,
            char_count=len(extracted.text),
            is_ocr_processed=extracted.is_ocr,
            ocr_confidence=extracted.ocr_confidence,
        )

    # ─── Helpers ──────────────────────────────────────────────────────────

    async def _guard(self, material_id: str, work) -> PipelineOutcome:
        """Run a pipeline coroutine; on any error persist failed + reason and raise PipelineFailed"""
        try:
            return await work
        except Exception as e:
            technical = str(e) or e.__class__.__name__
            reason = failure_reason(technical)
            log.error("Pipeline: failed material=%s error=%s", material_id, technical)
            self.db.rollback()
            crud.mark_failed(self.db, material_id, reason, technical)
            raise PipelineFailed(reason, technical) from e

    def _set_status(self, material_id: str, status: ProcessingStatus) -> None:
        log.info("Pipeline: material=%s status=%s", material_id, status.value)
        crud.set_processing_status(self.db, material_id, status)

    def _progress(self, percent: int) -> None:
        if self.on_progress is not None:
            self.on_progress(percent)

    def _enqueue_enrichment(self, material_id: str) -> None:
        try:
            self.queue.enqueue_enrichment(material_id)
        except Exception as e:
            log.warning("Pipeline: could not enqueue enrichment for material=%s: %s", material_id, e)

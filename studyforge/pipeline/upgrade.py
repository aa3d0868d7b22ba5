"""
Lazy upgrade of legacy (v1) materials to segment-based (v2) processing.

Triggered by the first generation request that finds a v1 material with no
segments. The request only claims the material and queues the job; the job
re-segments stored content, or re-runs the full pipeline when the stored
content is too thin to be useful.
"""

import logging
import math

from sqlalchemy.orm import Session

from studyforge.database import crud
from studyforge.exceptions import InsufficientContent, MaterialNotFound
from .orchestrator import MIN_VIABLE_TEXT_LENGTH, DocumentPipeline, PipelineOutcome
from .queue import DocumentJob, JobQueue

log = logging.getLogger(__name__)

# v1 content has no page information; assume one page per 3000 chars
LEGACY_CHARS_PER_PAGE = 3000


def request_upgrade(db: Session, queue: JobQueue, material_id: str) -> bool:
    """Claim the material and enqueue upgrade-to-v2; False if already claimed"""
    if not crud.claim_upgrade(db, material_id):
        log.info("Upgrade: material=%s already pending", material_id)
        return False
    queue.enqueue_upgrade(material_id)
    return True


class MaterialUpgrader:
    def __init__(self, db: Session, pipeline: DocumentPipeline):
        self.db = db
        self.pipeline = pipeline

    async def upgrade(self, material_id: str) -> PipelineOutcome:
        material = crud.get_material(self.db, material_id)
        if material is None:
            raise MaterialNotFound(material_id)

        content = (material.content or "").strip()
        if len(content) >= MIN_VIABLE_TEXT_LENGTH:
            page_count = max(1, math.ceil(len(content) / LEGACY_CHARS_PER_PAGE))
            log.info("Upgrade: material=%s re-segmenting stored content", material_id)
            return await self.pipeline.process_text(
                material_id,
                content,
                page_count,
                is_ocr=bool(material.is_ocr_processed),
                ocr_confidence=material.ocr_confidence,
            )

        if material.file_url:
            log.info("Upgrade: material=%s content too short, re-processing source file", material_id)
            return await self.pipeline.process_document(DocumentJob(
                material_id=material_id,
                file_url=material.file_url,
                mime_type=material.file_type or "",
                filename=material.filename or material.title,
            ))

        # Nothing to work from; goes through the same failure path as the pipeline
        return await self.pipeline.process_text(material_id, content, 1)

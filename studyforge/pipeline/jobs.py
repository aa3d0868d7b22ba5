"""
RQ job entry points.

Jobs run inside studyforge.worker. Each job opens its own DB session and
builds a JobQueue on the worker's Redis connection, so follow-up jobs reuse
the pool the worker was started with.
"""

import asyncio
import logging
from typing import Callable, Optional

from rq import get_current_job

from studyforge.database.database import SessionLocal
from studyforge.generation.llm_client import LLMClient
from .enrichment import enrich_material
from .orchestrator import DocumentPipeline
from .queue import DocumentJob, JobQueue
from .upgrade import MaterialUpgrader

log = logging.getLogger(__name__)


def _job_queue() -> JobQueue:
    return JobQueue(get_current_job().connection)


def _progress_reporter() -> Optional[Callable[[int], None]]:
    job = get_current_job()
    if job is None:
        return None

    def report(percent: int) -> None:
        job.meta["progress"] = percent
        job.save_meta()

    return report


def process_document_job(payload: dict) -> dict:
    """process-document"""
    job = DocumentJob(**payload)
    db = SessionLocal()
    try:
        pipeline = DocumentPipeline(db, _job_queue(), on_progress=_progress_reporter())
        return asyncio.run(pipeline.process_document(job)).to_dict()
    finally:
        db.close()


def process_legacy_material_job(payload: dict) -> dict:
    """process-legacy (v1 single pass)"""
    job = DocumentJob(**payload)
    db = SessionLocal()
    try:
        pipeline = DocumentPipeline(db, _job_queue())
        return asyncio.run(pipeline.process_legacy(job)).to_dict()
    finally:
        db.close()


def upgrade_to_v2_job(material_id: str) -> dict:
    """upgrade-to-v2"""
    db = SessionLocal()
    try:
        pipeline = DocumentPipeline(db, _job_queue(), on_progress=_progress_reporter())
        return asyncio.run(MaterialUpgrader(db, pipeline).upgrade(material_id)).to_dict()
    finally:
        db.close()


def enrich_material_job(material_id: str) -> list:
    """process-material"""
    db = SessionLocal()
    try:
        return asyncio.run(enrich_material(db, LLMClient(), material_id))
    finally:
        db.close()

"""
Job queue abstraction over RQ.

Stages are scheduled by dotted job path so the API process never imports the
worker-side job code. The Redis connection is injected; one JobQueue is built
per process from the shared RedisConnections pool.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

import redis
from rq import Queue, Retry

log = logging.getLogger(__name__)

DOCUMENT_QUEUE = "document-processing"
MATERIALS_QUEUE = "materials"

PROCESS_DOCUMENT_JOB = "studyforge.pipeline.jobs.process_document_job"
PROCESS_LEGACY_JOB = "studyforge.pipeline.jobs.process_legacy_material_job"
UPGRADE_TO_V2_JOB = "studyforge.pipeline.jobs.upgrade_to_v2_job"
ENRICH_MATERIAL_JOB = "studyforge.pipeline.jobs.enrich_material_job"

JOB_TIMEOUT = 15 * 60
RESULT_TTL = 24 * 60 * 60


@dataclass
class DocumentJob:
    """Payload of a process-document job"""
    material_id: str
    file_url: str
    mime_type: str
    filename: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class JobQueue:
    def __init__(self, connection: redis.Redis):
        self.connection = connection
        self.documents = Queue(DOCUMENT_QUEUE, connection=connection)
        self.materials = Queue(MATERIALS_QUEUE, connection=connection)

    def enqueue_document(self, job: DocumentJob) -> str:
        """process-document: download → extract → (OCR) → clean → segment"""
        rq_job = self.documents.enqueue(
            PROCESS_DOCUMENT_JOB,
            job.to_dict(),
            job_timeout=JOB_TIMEOUT,
            result_ttl=RESULT_TTL,
            description=f"process-document {job.material_id}",
        )
        log.info("Queue: process-document enqueued material=%s job=%s", job.material_id, rq_job.id)
        return rq_job.id

    def enqueue_legacy(self, job: DocumentJob) -> str:
        rq_job = self.documents.enqueue(
            PROCESS_LEGACY_JOB,
            job.to_dict(),
            job_timeout=JOB_TIMEOUT,
            result_ttl=RESULT_TTL,
            description=f"process-legacy {job.material_id}",
        )
        log.info("Queue: process-legacy enqueued material=%s job=%s", job.material_id, rq_job.id)
        return rq_job.id

    def enqueue_upgrade(self, material_id: str) -> str:
        rq_job = self.documents.enqueue(
            UPGRADE_TO_V2_JOB,
            material_id,
            job_timeout=JOB_TIMEOUT,
            result_ttl=RESULT_TTL,
            description=f"upgrade-to-v2 {material_id}",
        )
        log.info("Queue: upgrade-to-v2 enqueued material=%s job=%s", material_id, rq_job.id)
        return rq_job.id

    def enqueue_enrichment(self, material_id: str) -> str:
        """process-material: tagging, decoupled from the document pipeline"""
        rq_job = self.materials.enqueue(
            ENRICH_MATERIAL_JOB,
            material_id,
            result_ttl=RESULT_TTL,
            retry=Retry(max=3, interval=[5, 30, 120]),
            description=f"process-material {material_id}",
        )
        log.info("Queue: process-material enqueued material=%s job=%s", material_id, rq_job.id)
        return rq_job.id

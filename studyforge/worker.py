"""
RQ worker for the document pipeline.

    python -m studyforge.worker

Listens on the document-processing and materials queues using one Redis
connection pool for the life of the process.
"""

from dotenv import load_dotenv
load_dotenv()

import logging
import os

from rq import Queue, Worker

from studyforge.database.redis_client import RedisConnections
from studyforge.pipeline.queue import DOCUMENT_QUEUE, MATERIALS_QUEUE

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)


def main() -> None:
    connections = RedisConnections()
    queues = [Queue(name, connection=connections.client) for name in (DOCUMENT_QUEUE, MATERIALS_QUEUE)]
    worker = Worker(queues, connection=connections.client)
    log.info("Worker listening on %s", ", ".join(q.name for q in queues))
    try:
        worker.work()
    finally:
        connections.close()


if __name__ == "__main__":
    main()

"""
StudyForge API - Main Application
Material registration, processing status/retry, and quiz/flashcard generation.
"""

from dotenv import load_dotenv
load_dotenv()

import logging
import os
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from studyforge import __version__
from studyforge.database import models  # noqa: F401  registers tables on Base
from studyforge.database.database import engine, Base
from studyforge.database.redis_client import RedisConnections
from studyforge.generation.llm_client import LLMClient
from studyforge.pipeline.queue import JobQueue
from studyforge.routers import materials, processing, study

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables, open the Redis pool, build shared clients."""
    Base.metadata.create_all(bind=engine)
    redis_connections = RedisConnections()
    app.state.redis = redis_connections
    app.state.job_queue = JobQueue(redis_connections.client)
    app.state.llm = LLMClient()
    yield
    redis_connections.close()


app = FastAPI(
    title="StudyForge API",
    description="Document ingestion, segmentation and study material generation",
    version=__version__,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Routers ───────────────────────────────────────────────────────────────────

app.include_router(materials.router)
app.include_router(processing.router)
app.include_router(study.router)


@app.get("/")
def root():
    return {
        "name": "StudyForge API",
        "version": __version__,
        "endpoints": {
            "docs": "/docs",
            "materials": "/materials",
            "processing": "/processing",
            "health": "/health",
        },
    }


@app.get("/health")
def health(request: Request):
    """API is up and the job queue's Redis answers"""
    try:
        request.app.state.redis.ping()
    except redis.RedisError as e:
        raise HTTPException(status_code=503, detail=f"Redis unavailable: {e}")
    return {"status": "healthy", "service": "studyforge-api", "redis": "ok"}

"""
Shared FastAPI dependencies.

Long-lived clients (job queue, LLM client) are created once in the app
lifespan and stored on app.state; routes receive them through these functions.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from studyforge.database.database import get_db
from studyforge.generation.generators import FlashcardGenerator, QuizGenerator
from studyforge.generation.study_service import StudyMaterialService
from studyforge.pipeline.queue import JobQueue


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def get_llm(request: Request):
    return request.app.state.llm


def get_study_service(
    db: Session = Depends(get_db),
    queue: JobQueue = Depends(get_job_queue),
    llm=Depends(get_llm),
) -> StudyMaterialService:
    return StudyMaterialService(db, queue, QuizGenerator(llm), FlashcardGenerator(llm))

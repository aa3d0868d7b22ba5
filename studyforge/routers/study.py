"""
Quiz and flashcard generation for a material.

Responses are either the generated/cached items or, for legacy materials
being upgraded, {"status": "upgrading", ...}; clients poll again later.
"""

from typing import Union

from fastapi import APIRouter, Depends, HTTPException, status

from studyforge.exceptions import (
    GenerationFailed,
    InsufficientContent,
    MaterialNotFound,
    StillProcessing,
    UnsupportedDocument,
)
from studyforge.generation.schemas import FlashcardResult, GenerationRequest, QuizResult, UpgradingResult
from studyforge.generation.study_service import StudyMaterialService
from .deps import get_study_service

router = APIRouter(prefix="/materials", tags=["study"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, MaterialNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, StillProcessing):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "PROCESSING", "message": str(e), "status": e.status},
        )
    if isinstance(e, UnsupportedDocument):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "UNSUPPORTED", "message": str(e)},
        )
    if isinstance(e, InsufficientContent):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "INSUFFICIENT_CONTENT", "message": str(e)},
        )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"code": "GENERATION_FAILED", "message": str(e)},
    )


@router.post("/{material_id}/quiz", response_model=Union[QuizResult, UpgradingResult])
async def generate_quiz(
    material_id: str,
    body: GenerationRequest,
    service: StudyMaterialService = Depends(get_study_service),
):
    try:
        return await service.get_quiz(material_id, body)
    except (MaterialNotFound, StillProcessing, UnsupportedDocument, InsufficientContent, GenerationFailed) as e:
        raise _http_error(e)


@router.post("/{material_id}/flashcards", response_model=Union[FlashcardResult, UpgradingResult])
async def generate_flashcards(
    material_id: str,
    body: GenerationRequest,
    service: StudyMaterialService = Depends(get_study_service),
):
    try:
        return await service.get_flashcards(material_id, body)
    except (MaterialNotFound, StillProcessing, UnsupportedDocument, InsufficientContent, GenerationFailed) as e:
        raise _http_error(e)

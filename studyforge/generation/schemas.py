"""
Pydantic schemas for quiz and flashcard generation.

Strict models (QuizQuestion, Flashcard) describe a fully valid item; model
output that fails them goes through the repair rules before being dropped.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator

QuestionType = Literal["mcq", "fill_blank", "short_response", "true_false", "scenario"]
Difficulty = Literal["beginner", "intermediate", "advanced"]

DEFAULT_DIFFICULTY = "intermediate"
DEFAULT_QUESTION_COUNT = 5
DEFAULT_FLASHCARD_COUNT = 10


# ─── Output items ─────────────────────────────────────────────────────────────

class QuizQuestion(BaseModel):
    id: str
    type: QuestionType = "mcq"
    question: str = Field(..., min_length=10)
    options: List[str] = Field(..., min_length=2)
    answer: str = Field(..., min_length=1)
    explanation: str = Field(..., min_length=10)
    hint: Optional[str] = None


class QuizResponse(BaseModel):
    topic: str
    difficulty: Difficulty = DEFAULT_DIFFICULTY
    questions: List[QuizQuestion]


class Flashcard(BaseModel):
    id: str
    front: str = Field(..., min_length=5)
    back: str = Field(..., min_length=5)


# ─── Requests ─────────────────────────────────────────────────────────────────

class GenerationRequest(BaseModel):
    """Body of the quiz / flashcard endpoints."""
    page_start: Optional[int] = Field(None, ge=1)
    page_end: Optional[int] = Field(None, ge=1)
    regenerate: bool = False
    topic: Optional[str] = Field(None, description="Focus generation on segments matching this topic")
    difficulty: Difficulty = DEFAULT_DIFFICULTY
    count: Optional[int] = Field(None, ge=1, le=50, description="Questions or cards to generate")

    @model_validator(mode="after")
    def _check_page_range(self):
        if self.page_start and self.page_end and self.page_end < self.page_start:
            raise ValueError("page_end must be >= page_start")
        return self

    @property
    def has_page_range(self) -> bool:
        return self.page_start is not None or self.page_end is not None

    @property
    def is_full_document(self) -> bool:
        return not self.has_page_range and not self.regenerate and not self.topic


# ─── Responses ────────────────────────────────────────────────────────────────

class QuizResult(BaseModel):
    status: Literal["ready"] = "ready"
    material_id: str
    cached: bool
    questions: List[QuizQuestion]
    selection_method: Optional[str] = None


class FlashcardResult(BaseModel):
    status: Literal["ready"] = "ready"
    material_id: str
    cached: bool
    flashcards: List[Flashcard]
    selection_method: Optional[str] = None


class UpgradingResult(BaseModel):
    """Returned while a v1 material is being re-processed into segments."""
    status: Literal["upgrading"] = "upgrading"
    message: str = "Preparing this material for smart study..."
    material_id: str

"""
Quiz and flashcard generators.

Each generator asks the model for a batch of items, unwraps and validates
them, repairs what can be repaired and retries with a slightly higher
temperature when too few items survive. After the last attempt the best
batch seen so far is returned; only a run with zero usable items fails.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from pydantic import BaseModel, ValidationError

from studyforge.exceptions import GenerationFailed, InsufficientContent, LLMUnavailable, ValidationFailed
from studyforge.ingestion.segmenter import estimate_tokens
from .json_unwrap import locate_items, parse_llm_json
from .prompt_builder import SYSTEM_PROMPT, build_flashcard_prompt, build_quiz_prompt
from .repair import repair_flashcard, repair_question
from .schemas import DEFAULT_DIFFICULTY, Flashcard, QuizQuestion, QuizResponse

log = logging.getLogger(__name__)

MAX_GENERATION_ATTEMPTS = 3
BASE_TEMPERATURE = 0.7
TEMPERATURE_STEP = 0.1
TOKENS_PER_ITEM = 50
# Share of the requested items an attempt must deliver to stop retrying
MIN_VALID_FRACTION = 0.5


def scaled_count(requested: int, available_tokens: int) -> int:
    """Cap the item count by how much material there is (one item per 50 tokens)"""
    if available_tokens < TOKENS_PER_ITEM:
        raise InsufficientContent(
            f"Not enough content to generate from ({available_tokens} tokens, need {TOKENS_PER_ITEM})"
        )
    return min(requested, max(1, available_tokens // TOKENS_PER_ITEM))


def available_tokens(segments: Optional[Sequence] = None, content: Optional[str] = None) -> int:
    if segments:
        return sum(seg.token_count for seg in segments)
    return estimate_tokens(content or "")


@dataclass
class _Attempt:
    items: List[BaseModel] = field(default_factory=list)
    error: Optional[str] = None


def _validate_item(raw: Any, model: type, repair: Callable[[Any], Optional[dict]]) -> Optional[BaseModel]:
    """Strict schema first; on failure, repair and validate again"""
    if isinstance(raw, dict):
        try:
            return model.model_validate(raw)
        except ValidationError:
            pass
    repaired = repair(raw)
    if repaired is None:
        return None
    repaired.setdefault("id", "pending")
    try:
        return model.model_validate(repaired)
    except ValidationError:
        return None


class _ItemGenerator:
    kind = "item"
    id_prefix = "i"
    keys: Sequence[str] = ()
    model: type = BaseModel

    def __init__(self, llm, max_attempts: int = MAX_GENERATION_ATTEMPTS):
        self.llm = llm
        self.max_attempts = max_attempts

    def _repair(self, raw: Any) -> Optional[dict]:
        raise NotImplementedError

    async def _attempt(self, prompt: str, temperature: float) -> _Attempt:
        try:
            raw = await self.llm.complete(prompt, system=SYSTEM_PROMPT, temperature=temperature)
            data = parse_llm_json(raw)
        except (LLMUnavailable, ValidationFailed) as e:
            return _Attempt(error=str(e))

        match = locate_items(data, self.keys)
        if match is None:
            return _Attempt(error=f"No {self.kind} array found in model response")

        items = []
        dropped = 0
        for raw_item in match.items:
            item = _validate_item(raw_item, self.model, self._repair)
            if item is None:
                dropped += 1
            else:
                items.append(item)
        if dropped:
            log.info("Generate %s: dropped %s unsalvageable items", self.kind, dropped)
        return _Attempt(items=items)

    async def _run(self, prompt: str, count: int) -> List[BaseModel]:
        needed = max(1, math.ceil(count * MIN_VALID_FRACTION))
        best: List[BaseModel] = []
        last_error = None
        for attempt in range(self.max_attempts):
            temperature = BASE_TEMPERATURE + TEMPERATURE_STEP * attempt
            result = await self._attempt(prompt, temperature)
            if result.error:
                last_error = result.error
                log.warning(
                    "Generate %s: attempt %s/%s failed: %s",
                    self.kind, attempt + 1, self.max_attempts, result.error,
                )
                continue
            log.info(
                "Generate %s: attempt %s/%s valid=%s needed=%s",
                self.kind, attempt + 1, self.max_attempts, len(result.items), needed,
            )
            if len(result.items) > len(best):
                best = result.items
            if len(best) >= needed:
                break

        if not best:
            raise GenerationFailed(
                f"Could not generate any valid {self.kind}s after {self.max_attempts} attempts",
                attempts=self.max_attempts,
                last_error=last_error,
            )
        return [
            item.model_copy(update={"id": f"{self.id_prefix}{n}"})
            for n, item in enumerate(best[:count], start=1)
        ]


class QuizGenerator(_ItemGenerator):
    kind = "question"
    id_prefix = "q"
    keys = ("questions", "quiz", "items")
    model = QuizQuestion

    def _repair(self, raw: Any) -> Optional[dict]:
        return repair_question(raw)

    async def generate(
        self,
        topic: str,
        count: int,
        difficulty: str = DEFAULT_DIFFICULTY,
        segments: Optional[Sequence] = None,
        content: Optional[str] = None,
    ) -> QuizResponse:
        count = scaled_count(count, available_tokens(segments, content))
        prompt = build_quiz_prompt(topic, count, difficulty, segments=segments, content=content)
        questions = await self._run(prompt, count)
        return QuizResponse(topic=topic, difficulty=difficulty, questions=questions)


class FlashcardGenerator(_ItemGenerator):
    kind = "flashcard"
    id_prefix = "f"
    keys = ("flashcards", "cards", "items")
    model = Flashcard

    def _repair(self, raw: Any) -> Optional[dict]:
        return repair_flashcard(raw)

    async def generate(
        self,
        topic: str,
        count: int,
        segments: Optional[Sequence] = None,
        content: Optional[str] = None,
    ) -> List[Flashcard]:
        count = scaled_count(count, available_tokens(segments, content))
        prompt = build_flashcard_prompt(topic, count, segments=segments, content=content)
        return await self._run(prompt, count)

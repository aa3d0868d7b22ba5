"""
Prompt templates for quiz and flashcard generation.

Segment-based prompts label every segment with its index, page span and
heading so the model stays inside the selected material.
"""

from typing import Optional, Sequence

MAX_CONTENT_CHARS = 8000


# ─── System prompt ─────────────────────────────────────────────────────────────

SYSTEM_PROMPT = """You are an expert educator who writes study material from course documents.

Use ONLY information contained in the text you are given. Never invent facts.
Respond with ONLY a valid JSON object, no markdown, no commentary.

QUIZ FORMAT:
{
  "topic": "<topic>",
  "difficulty": "<beginner|intermediate|advanced>",
  "questions": [
    {
      "id": "q1",
      "type": "<mcq|fill_blank|short_response|true_false|scenario>",
      "question": "<question text>",
      "options": ["<option>", "<option>", "<option>", "<option>"],
      "answer": "<exact text of the correct option>",
      "explanation": "<why the answer is correct>",
      "hint": "<optional hint>"
    }
  ]
}

FLASHCARD FORMAT:
{
  "flashcards": [
    {"id": "f1", "front": "<term or question>", "back": "<definition or answer>"}
  ]
}

RULES:
- mcq and scenario questions have exactly 4 options; true_false has ["True", "False"]
- answer must match one option exactly
- ids are q1, q2, ... for questions and f1, f2, ... for flashcards"""


QUIZ_PROMPT = """Create a {difficulty} quiz of exactly {count} questions about "{topic}" based ONLY on the following {source}.

{body}

Mix question types where the material allows it. Return the QUIZ FORMAT JSON object."""


FLASHCARD_PROMPT = """Create exactly {count} flashcards about "{topic}" based ONLY on the following {source}.

{body}

Each card tests one concept: a term, fact or question on the front and a concise answer on the back.
Return the FLASHCARD FORMAT JSON object."""


# ─── Body formatting ───────────────────────────────────────────────────────────

def _page_label(page_start: Optional[int], page_end: Optional[int]) -> Optional[str]:
    if page_start is None:
        return None
    if page_end is None or page_end == page_start:
        return f"Page {page_start}"
    return f"Pages {page_start}-{page_end}"


def format_segments(segments: Sequence, limit: int = MAX_CONTENT_CHARS) -> str:
    """Render segments as labelled, triple-quoted blocks; each text capped at limit chars"""
    blocks = []
    for n, seg in enumerate(segments, start=1):
        header = f"[Segment {n}"
        pages = _page_label(seg.page_start, seg.page_end)
        if pages:
            header += f" - {pages}"
        if seg.heading:
            header += f' - "{seg.heading}"'
        header += "]"
        blocks.append(f'{header}\n"""\n{truncate_content(seg.text, limit)}\n"""')
    return "\n\n".join(blocks)


def truncate_content(content: str, limit: int = MAX_CONTENT_CHARS) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + "..."


def build_quiz_prompt(
    topic: str,
    count: int,
    difficulty: str,
    segments: Optional[Sequence] = None,
    content: Optional[str] = None,
) -> str:
    if segments:
        source, body = "document segments", format_segments(segments)
    else:
        source, body = "content", f'"""\n{truncate_content(content or "")}\n"""'
    return QUIZ_PROMPT.format(difficulty=difficulty, count=count, topic=topic, source=source, body=body)


def build_flashcard_prompt(
    topic: str,
    count: int,
    segments: Optional[Sequence] = None,
    content: Optional[str] = None,
) -> str:
    if segments:
        source, body = "document segments", format_segments(segments)
    else:
        source, body = "content", f'"""\n{truncate_content(content or "")}\n"""'
    return FLASHCARD_PROMPT.format(count=count, topic=topic, source=source, body=body)

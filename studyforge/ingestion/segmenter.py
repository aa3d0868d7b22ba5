"""
Token-aware segmenter
Stage 3 of the document pipeline: cleaned text → ordered segments.

Strategy:
1. Split into paragraphs on blank lines, remembering each paragraph's character span.
2. Paragraphs larger than max_tokens are broken at sentence boundaries.
3. Units accumulate into a segment while it stays within max_tokens; a segment
   closes once it reaches target_tokens.
4. A segment too small to take the next unit whole is topped up with that
   unit's leading sentences.
5. A short final remainder merges into the previous segment.

Tokens are estimated as ceil(chars / 4). OCR text gets smaller budgets because
recognition noise makes each segment less reliable.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .schemas import PageContent, TextSegment

log = logging.getLogger(__name__)

HEADING_MAX_CHARS = 100
FINAL_MERGE_FACTOR = 1.2
JOINER = "\n\n"

_PARAGRAPH_BREAK = re.compile(r"\n{2,}")
# Sentence plus its terminator; the trailing unterminated remainder is a sentence too
_SENTENCE = re.compile(r"[^.!?]*(?:[.!?]+|$)")


@dataclass(frozen=True)
class SegmentBudget:
    target_tokens: int
    min_tokens: int
    max_tokens: int


DEFAULT_BUDGET = SegmentBudget(target_tokens=400, min_tokens=200, max_tokens=600)
OCR_BUDGET = SegmentBudget(target_tokens=250, min_tokens=100, max_tokens=350)


@dataclass
class _Unit:
    text: str
    start: int
    end: int
    # Sentence pieces of the same paragraph, used for topping up small segments
    splittable: bool = True


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def _paragraph_spans(text: str) -> List[_Unit]:
    units = []
    pos = 0
    for brk in list(_PARAGRAPH_BREAK.finditer(text)) + [None]:
        end = brk.start() if brk else len(text)
        raw = text[pos:end]
        stripped = raw.strip()
        if stripped:
            lead = len(raw) - len(raw.lstrip())
            start = pos + lead
            units.append(_Unit(stripped, start, start + len(stripped)))
        if brk:
            pos = brk.end()
    return units


def _sentence_spans(unit: _Unit) -> List[_Unit]:
    pieces = []
    for m in _SENTENCE.finditer(unit.text):
        raw = m.group(0)
        stripped = raw.strip()
        if not stripped:
            continue
        lead = len(raw) - len(raw.lstrip())
        start = unit.start + m.start() + lead
        pieces.append(_Unit(stripped, start, start + len(stripped)))
    return pieces


def _pack_sentences(unit: _Unit, max_tokens: int) -> List[_Unit]:
    """Break an over-sized paragraph into runs of whole sentences each within max_tokens"""
    sentences = _sentence_spans(unit)
    if len(sentences) <= 1:
        # Un-splittable: keep whole even though it exceeds the budget
        return [_Unit(unit.text, unit.start, unit.end, splittable=False)]

    packed: List[_Unit] = []
    current: Optional[_Unit] = None
    for sentence in sentences:
        if current is None:
            current = sentence
            continue
        merged = current.text + " " + sentence.text
        if estimate_tokens(merged) <= max_tokens:
            current = _Unit(merged, current.start, sentence.end)
        else:
            packed.append(current)
            current = sentence
    if current is not None:
        packed.append(current)
    return packed


class Segmenter:
    def __init__(self, budget: SegmentBudget = DEFAULT_BUDGET):
        self.budget = budget

    def segment(self, text: str, pages: Optional[Sequence[PageContent]] = None) -> List[TextSegment]:
        if not text or not text.strip():
            return []
        budget = self.budget

        units: List[_Unit] = []
        for paragraph in _paragraph_spans(text):
            if estimate_tokens(paragraph.text) > budget.max_tokens:
                units.extend(_pack_sentences(paragraph, budget.max_tokens))
            else:
                units.append(paragraph)

        chunks: List[_Unit] = []
        current: Optional[_Unit] = None
        queue = list(units)
        while queue:
            unit = queue.pop(0)
            if current is None:
                current = unit
            else:
                merged = current.text + JOINER + unit.text
                if estimate_tokens(merged) <= budget.max_tokens:
                    current = _Unit(merged, current.start, unit.end)
                else:
                    if estimate_tokens(current.text) < budget.min_tokens and unit.splittable:
                        head, tail = self._split_to_fit(current, unit)
                        if head is not None:
                            current = head
                            if tail is not None:
                                queue.insert(0, tail)
                            chunks.append(current)
                            current = None
                            continue
                    chunks.append(current)
                    current = unit
            if estimate_tokens(current.text) >= budget.target_tokens:
                chunks.append(current)
                current = None

        if current is not None:
            if (
                chunks
                and estimate_tokens(current.text) < budget.min_tokens
                and estimate_tokens(chunks[-1].text + JOINER + current.text)
                <= budget.max_tokens * FINAL_MERGE_FACTOR
            ):
                last = chunks.pop()
                current = _Unit(last.text + JOINER + current.text, last.start, current.end)
            chunks.append(current)

        segments = []
        for index, chunk in enumerate(chunks):
            page_start, page_end = _page_range(chunk.start, chunk.end, pages)
            segments.append(TextSegment(
                text=chunk.text,
                token_count=estimate_tokens(chunk.text),
                segment_index=index,
                char_start=chunk.start,
                char_end=chunk.end,
                page_start=page_start,
                page_end=page_end,
                heading=detect_heading(chunk.text),
            ))
        log.info(
            "Stage segment: done segments=%s target=%s min=%s max=%s",
            len(segments), budget.target_tokens, budget.min_tokens, budget.max_tokens,
        )
        return segments

    def _split_to_fit(self, current: _Unit, unit: _Unit) -> Tuple[Optional[_Unit], Optional[_Unit]]:
        """Move leading sentences of unit into current while it fits; returns (filled, rest)"""
        sentences = _sentence_spans(unit)
        taken = 0
        text = current.text
        for sentence in sentences:
            sep = JOINER if taken == 0 else " "
            candidate = text + sep + sentence.text
            if estimate_tokens(candidate) > self.budget.max_tokens:
                break
            text = candidate
            taken += 1
        if taken == 0:
            return None, None
        filled = _Unit(text, current.start, sentences[taken - 1].end)
        if taken == len(sentences):
            return filled, None
        rest_start = sentences[taken].start
        rest = _Unit(unit.text[rest_start - unit.start:], rest_start, unit.end)
        return filled, rest


def _page_range(start: int, end: int, pages: Optional[Sequence[PageContent]]) -> Tuple[Optional[int], Optional[int]]:
    if not pages:
        return None, None
    hits = [p.page_number for p in pages if p.start_char < end and p.end_char > start]
    if not hits:
        return None, None
    return min(hits), max(hits)


def detect_heading(text: str) -> Optional[str]:
    """First line when it looks like a title: short, no sentence terminator, more content after it"""
    lines = text.strip().split("\n")
    first = lines[0].strip()
    if len(first) >= HEADING_MAX_CHARS or len(first) <= 3:
        return None
    if first[-1] in ".!?" and not first.endswith(":"):
        return None
    has_more = len(lines) > 1 or len(text) > len(first) + 50
    return first if has_more else None


def segment_text(
    text: str,
    pages: Optional[Sequence[PageContent]] = None,
    is_ocr: bool = False,
) -> List[TextSegment]:
    """Segment cleaned text with the default or OCR-conservative budget"""
    return Segmenter(OCR_BUDGET if is_ocr else DEFAULT_BUDGET).segment(text, pages)

"""
Segment selection for generation prompts.

Picks the segments of one material that a quiz or flashcard prompt should
see: page-range filter, then topic scoring, then a token/count budget.
If nothing survives, an even stride over the whole document is used so a
request never ends up with an empty prompt.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from studyforge.database import crud
from studyforge.database.models import DocumentSegment

log = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 8000
DEFAULT_MAX_SEGMENTS = 20

PHRASE_IN_TEXT_SCORE = 10
PHRASE_IN_HEADING_SCORE = 8
KEYWORD_IN_TEXT_SCORE = 2
KEYWORD_IN_HEADING_SCORE = 3
MIN_KEYWORD_LENGTH = 3

METHOD_ALL = "all"
METHOD_PAGE_RANGE = "page_range"
METHOD_TOPIC = "topic"
METHOD_RANDOM = "random"


@dataclass
class SelectionOptions:
    topic: Optional[str] = None
    page_start: Optional[int] = None
    page_end: Optional[int] = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_segments: int = DEFAULT_MAX_SEGMENTS


@dataclass
class SelectedSegments:
    segments: List[DocumentSegment]
    total_tokens: int
    selection_method: str


def overlaps_page_range(segment, page_start: Optional[int], page_end: Optional[int]) -> bool:
    """Segments without page info always match"""
    if segment.page_start is None and segment.page_end is None:
        return True
    seg_start = segment.page_start or 1
    seg_end = segment.page_end or seg_start
    if page_start is not None and page_end is not None:
        return seg_start <= page_end and seg_end >= page_start
    if page_start is not None:
        return seg_end >= page_start
    if page_end is not None:
        return seg_start <= page_end
    return True


def score_segment(segment, topic: str) -> int:
    phrase = topic.lower().strip()
    keywords = [w for w in phrase.split() if len(w) >= MIN_KEYWORD_LENGTH]
    text = (segment.text or "").lower()
    heading = (segment.heading or "").lower()

    score = 0
    if phrase and phrase in text:
        score += PHRASE_IN_TEXT_SCORE
    if phrase and heading and phrase in heading:
        score += PHRASE_IN_HEADING_SCORE
    for word in keywords:
        if word in text:
            score += KEYWORD_IN_TEXT_SCORE
        if heading and word in heading:
            score += KEYWORD_IN_HEADING_SCORE
    return score


def apply_budget(segments: Sequence, max_tokens: int, max_segments: int) -> List:
    """Keep segments in order until either budget runs out; the first one always fits"""
    kept = []
    tokens = 0
    for seg in segments:
        if len(kept) >= max_segments:
            break
        if kept and tokens + seg.token_count > max_tokens:
            break
        kept.append(seg)
        tokens += seg.token_count
    return kept


def stride_sample(segments: Sequence, max_tokens: int, max_segments: int) -> List:
    """Evenly spaced segments across the document, returned in index order"""
    stride = max(1, len(segments) // max_segments)
    kept = []
    tokens = 0
    for seg in segments[::stride]:
        if len(kept) >= max_segments:
            break
        if kept and tokens + seg.token_count > max_tokens:
            break
        kept.append(seg)
        tokens += seg.token_count
    return sorted(kept, key=lambda s: s.segment_index)


def select_from(segments: Sequence, options: SelectionOptions) -> SelectedSegments:
    """Selection over an in-memory segment list (ordered by segment_index)"""
    all_segments = list(segments)
    candidates = all_segments
    method = METHOD_ALL

    if options.page_start is not None or options.page_end is not None:
        candidates = [s for s in candidates if overlaps_page_range(s, options.page_start, options.page_end)]
        method = METHOD_PAGE_RANGE

    if options.topic and options.topic.strip():
        scored = [(score_segment(s, options.topic), s) for s in candidates]
        matched = [(score, s) for score, s in scored if score > 0]
        if matched:
            matched.sort(key=lambda pair: (-pair[0], pair[1].segment_index))
            candidates = [s for _, s in matched]
            method = METHOD_TOPIC
        else:
            log.info("Select: no segment matched topic %r, keeping unfiltered set", options.topic)

    selected = apply_budget(candidates, options.max_tokens, options.max_segments)

    if not selected and all_segments:
        log.info("Select: empty selection, sampling across %s segments", len(all_segments))
        selected = stride_sample(all_segments, options.max_tokens, options.max_segments)
        method = METHOD_RANDOM

    return SelectedSegments(
        segments=selected,
        total_tokens=sum(s.token_count for s in selected),
        selection_method=method,
    )


class SegmentSelector:
    def __init__(self, db: Session):
        self.db = db

    def select(self, material_id: str, options: Optional[SelectionOptions] = None) -> SelectedSegments:
        options = options or SelectionOptions()
        result = select_from(crud.get_segments(self.db, material_id), options)
        log.info(
            "Select: material=%s method=%s segments=%s tokens=%s",
            material_id, result.selection_method, len(result.segments), result.total_tokens,
        )
        return result

from dataclasses import dataclass
from typing import Optional

from conftest import make_segments
from studyforge.database import crud
from studyforge.generation.segment_selector import (
    METHOD_ALL,
    METHOD_PAGE_RANGE,
    METHOD_RANDOM,
    METHOD_TOPIC,
    SegmentSelector,
    SelectionOptions,
    overlaps_page_range,
    score_segment,
    select_from,
)


@dataclass
class Seg:
    segment_index: int
    text: str
    token_count: int = 100
    page_start: Optional[int] = None
    page_end: Optional[int] = None
    heading: Optional[str] = None


def _paged(n: int):
    return [Seg(i, f"segment {i} text", page_start=i + 1, page_end=i + 1) for i in range(n)]


def test_no_filters_returns_all_in_order():
    result = select_from(_paged(5), SelectionOptions())
    assert result.selection_method == METHOD_ALL
    assert [s.segment_index for s in result.segments] == [0, 1, 2, 3, 4]
    assert result.total_tokens == 500


def test_page_range_keeps_overlapping_segments_only():
    segments = _paged(6) + [Seg(6, "spans pages 2-5", page_start=2, page_end=5)]
    result = select_from(segments, SelectionOptions(page_start=3, page_end=4))
    assert result.selection_method == METHOD_PAGE_RANGE
    assert [s.segment_index for s in result.segments] == [2, 3, 6]


def test_open_ended_page_ranges():
    seg = Seg(0, "x", page_start=4, page_end=6)
    assert overlaps_page_range(seg, 6, None)
    assert not overlaps_page_range(seg, 7, None)
    assert overlaps_page_range(seg, None, 4)
    assert not overlaps_page_range(seg, None, 3)


def test_segments_without_pages_always_overlap():
    assert overlaps_page_range(Seg(0, "x"), 10, 12)
    assert overlaps_page_range(Seg(0, "x", page_start=3), 3, 3)


def test_page_range_without_matches_falls_back_to_sampling():
    result = select_from(_paged(5), SelectionOptions(page_start=50, page_end=60))
    assert result.selection_method == METHOD_RANDOM
    assert result.segments
    indexes = [s.segment_index for s in result.segments]
    assert indexes == sorted(indexes)


def test_topic_scoring_orders_by_score():
    segments = [
        Seg(0, "Nothing relevant here."),
        Seg(1, "Cell membranes regulate transport.", heading="Cell membranes"),
        Seg(2, "Every cell has a membrane made of lipids."),
    ]
    result = select_from(segments, SelectionOptions(topic="cell membranes"))
    assert result.selection_method == METHOD_TOPIC
    assert [s.segment_index for s in result.segments] == [1, 2]


def test_score_weights():
    seg = Seg(0, "photosynthesis in leaves", heading="Photosynthesis basics")
    # phrase in text 10 + phrase in heading 8 + keyword text 2 + keyword heading 3
    assert score_segment(seg, "photosynthesis") == 23
    # short keywords are ignored
    assert score_segment(Seg(0, "an ox"), "an ox") == 10


def test_topic_without_matches_keeps_unfiltered_set():
    result = select_from(_paged(3), SelectionOptions(topic="quantum chromodynamics"))
    assert result.selection_method == METHOD_ALL
    assert len(result.segments) == 3


def test_token_budget_keeps_at_least_one_segment():
    segments = [Seg(0, "huge", token_count=9000), Seg(1, "small", token_count=10)]
    result = select_from(segments, SelectionOptions(max_tokens=8000))
    assert [s.segment_index for s in result.segments] == [0]


def test_budget_stops_at_first_overflow():
    segments = [Seg(i, "t", token_count=3000) for i in range(5)]
    result = select_from(segments, SelectionOptions(max_tokens=8000))
    assert len(result.segments) == 2
    assert result.total_tokens == 6000


def test_segment_count_cap():
    result = select_from(_paged(30), SelectionOptions(max_segments=20))
    assert len(result.segments) == 20


def test_stride_sampling_spreads_across_document():
    segments = _paged(40)
    result = select_from(segments, SelectionOptions(page_start=100, max_segments=10))
    assert result.selection_method == METHOD_RANDOM
    assert [s.segment_index for s in result.segments] == [0, 4, 8, 12, 16, 20, 24, 28, 32, 36]


def test_selector_reads_segments_from_db(db):
    material = crud.create_material(db, title="Doc")
    crud.replace_segments(db, material.id, make_segments(
        ["alpha text " * 20, "beta text " * 20, "gamma text " * 20],
        pages=[(1, 1), (2, 2), (3, 3)],
    ))
    result = SegmentSelector(db).select(material.id, SelectionOptions(page_start=2, page_end=2))
    assert result.selection_method == METHOD_PAGE_RANGE
    assert [s.segment_index for s in result.segments] == [1]
    assert result.segments[0].text.startswith("beta")

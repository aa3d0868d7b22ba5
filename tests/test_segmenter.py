import random

from studyforge.ingestion.extractor import estimate_page_boundaries
from studyforge.ingestion.segmenter import (
    DEFAULT_BUDGET,
    OCR_BUDGET,
    detect_heading,
    estimate_tokens,
    segment_text,
)


def _document(seed: int = 7, paragraphs: int = 40) -> str:
    rng = random.Random(seed)
    parts = []
    for p in range(paragraphs):
        sentences = [
            f"Sentence {s} of paragraph {p} explains one idea about the topic."
            for s in range(rng.randint(2, 25))
        ]
        parts.append(" ".join(sentences))
    # one paragraph well over the max budget
    parts.insert(10, " ".join(f"Long paragraph sentence number {s} keeps going on." for s in range(90)))
    return "\n\n".join(parts)


def _non_ws(text: str) -> str:
    return "".join(text.split())


def test_empty_text_has_no_segments():
    assert segment_text("") == []
    assert segment_text("   \n\n  ") == []


def test_short_text_is_one_segment():
    segments = segment_text("Just a short note.\n\nWith two paragraphs.")
    assert len(segments) == 1
    assert segments[0].segment_index == 0
    assert segments[0].text == "Just a short note.\n\nWith two paragraphs."


def test_token_estimate():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_segments_reconstruct_the_document():
    text = _document()
    segments = segment_text(text)
    assert _non_ws("".join(s.text for s in segments)) == _non_ws(text)
    assert [s.segment_index for s in segments] == list(range(len(segments)))


def test_segments_respect_token_budget():
    segments = segment_text(_document())
    assert len(segments) > 3
    for seg in segments[:-1]:
        assert DEFAULT_BUDGET.min_tokens <= seg.token_count <= DEFAULT_BUDGET.max_tokens
        assert seg.token_count == estimate_tokens(seg.text)


def test_ocr_budget_is_smaller():
    text = _document(seed=3)
    default = segment_text(text)
    ocr = segment_text(text, is_ocr=True)
    assert len(ocr) > len(default)
    for seg in ocr[:-1]:
        assert OCR_BUDGET.min_tokens <= seg.token_count <= OCR_BUDGET.max_tokens


def test_unterminated_tail_of_long_paragraph_is_kept():
    body = " ".join(f"Sentence {i} is complete." for i in range(200))
    text = body + " and this tail has no terminator"
    segments = segment_text(text)
    assert len(segments) > 1
    assert segments[-1].text.endswith("and this tail has no terminator")
    assert _non_ws("".join(s.text for s in segments)) == _non_ws(text)


def test_unsplittable_paragraph_stays_whole():
    blob = "word " * 1000  # no sentence terminator anywhere
    segments = segment_text(blob.strip())
    assert len(segments) == 1
    assert segments[0].token_count > DEFAULT_BUDGET.max_tokens


def test_small_remainder_merges_into_previous_segment():
    big = " ".join(f"Filler sentence {i} for the first segment." for i in range(45))
    text = big + "\n\nTiny closing line."
    segments = segment_text(text)
    assert segments[-1].text.endswith("Tiny closing line.")
    assert all("Tiny closing line." not in s.text for s in segments[:-1])


def test_char_spans_are_ordered():
    text = _document()
    segments = segment_text(text)
    for prev, nxt in zip(segments, segments[1:]):
        assert prev.char_end <= nxt.char_start
    first = segments[0]
    assert text[first.char_start:first.char_start + 20] == first.text[:20]


def test_page_attribution():
    text = _document(paragraphs=20)
    pages = estimate_page_boundaries(text, 4)
    segments = segment_text(text, pages)
    assert segments[0].page_start == 1
    assert segments[-1].page_end == 4
    for seg in segments:
        assert 1 <= seg.page_start <= seg.page_end <= 4
    for prev, nxt in zip(segments, segments[1:]):
        assert prev.page_start <= nxt.page_start


def test_no_pages_means_no_page_info():
    segments = segment_text("Some text here that is long enough.")
    assert segments[0].page_start is None
    assert segments[0].page_end is None


def test_heading_detection():
    assert detect_heading("Introduction\nPlants need light to grow.") == "Introduction"
    assert detect_heading("Key terms:\nOsmosis, diffusion") == "Key terms:"
    assert detect_heading("This is a full sentence.\nMore text follows.") is None
    assert detect_heading("Abc\nToo short a title") is None
    assert detect_heading("A lone title with nothing after") is None
    assert detect_heading("x" * 120 + "\nbody") is None

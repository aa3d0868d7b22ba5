"""
Plain data carriers passed between ingestion steps.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class PageContent:
    """Approximate span of one page inside the extracted text (1-based pages, [start, end) chars)"""
    page_number: int
    text: str
    start_char: int
    end_char: int


@dataclass
class ExtractionResult:
    text: str
    page_count: int
    pages: List[PageContent]
    requires_ocr: bool
    file_type: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class OcrPage:
    page_number: int
    text: str
    confidence: float  # 0-100, 0 when the page failed


@dataclass
class OcrResult:
    text: str
    confidence: float
    page_count: int
    pages: List[OcrPage] = field(default_factory=list)


@dataclass
class TextSegment:
    """One segment produced by the segmenter, before it is persisted"""
    text: str
    token_count: int
    segment_index: int
    char_start: int
    char_end: int
    page_start: Optional[int] = None
    page_end: Optional[int] = None
    heading: Optional[str] = None

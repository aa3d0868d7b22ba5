"""
Document text extraction
Stage 1 of the document pipeline: bytes in, plain text + approximate pages out.

CONSTRAINTS:
- No DB writes, no network: pure function of (bytes, mime type, filename)
- Page boundaries are estimates (chars spread evenly over the page count)
- Too little text (< MIN_TEXT_THRESHOLD stripped chars) flags the result for OCR
"""

import io
import logging
import math
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import fitz  # PyMuPDF

from studyforge.exceptions import ExtractionFailed, UnsupportedFormat
from .schemas import ExtractionResult, PageContent

# Suppress verbose parser warnings
logging.getLogger("pdfminer").setLevel(logging.ERROR)
logging.getLogger("PIL").setLevel(logging.ERROR)
logging.getLogger("unstructured").setLevel(logging.WARNING)

log = logging.getLogger(__name__)

MIN_TEXT_THRESHOLD = 100

# Rough page sizes used where the format has no page concept
DOCX_CHARS_PER_PAGE = 3000
SLIDE_CHARS_PER_PAGE = 500

PDF = "pdf"
DOCX = "docx"
DOC = "doc"
PPTX = "pptx"
PPT = "ppt"
TXT = "txt"
IMAGE = "image"

MIME_TYPES: Dict[str, str] = {
    "application/pdf": PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DOCX,
    "application/msword": DOC,
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": PPTX,
    "application/vnd.ms-powerpoint": PPT,
    "text/plain": TXT,
    "image/png": IMAGE,
    "image/jpeg": IMAGE,
    "image/jpg": IMAGE,
    "image/tiff": IMAGE,
    "image/bmp": IMAGE,
    "image/webp": IMAGE,
}

EXTENSIONS: Dict[str, str] = {
    "pdf": PDF,
    "docx": DOCX,
    "doc": DOC,
    "pptx": PPTX,
    "ppt": PPT,
    "txt": TXT,
    "png": IMAGE,
    "jpg": IMAGE,
    "jpeg": IMAGE,
    "tif": IMAGE,
    "tiff": IMAGE,
    "bmp": IMAGE,
    "webp": IMAGE,
}


def detect_file_type(mime_type: Optional[str], filename: Optional[str] = None) -> str:
    """Resolve a format key from the MIME type, falling back to the file extension"""
    mime = (mime_type or "").split(";")[0].strip().lower()
    if mime in MIME_TYPES:
        return MIME_TYPES[mime]
    if filename:
        ext = Path(filename).suffix.lower().lstrip(".")
        if ext in EXTENSIONS:
            return EXTENSIONS[ext]
    raise UnsupportedFormat(mime_type or (Path(filename).suffix if filename else "unknown"))


def estimate_page_boundaries(text: str, page_count: int) -> List[PageContent]:
    """Split text into page_count equal character ranges (last page takes the remainder)"""
    page_count = max(1, page_count)
    chars_per_page = max(1, math.ceil(len(text) / page_count))
    pages = []
    for i in range(page_count):
        start = min(i * chars_per_page, len(text))
        end = len(text) if i == page_count - 1 else min(start + chars_per_page, len(text))
        pages.append(PageContent(page_number=i + 1, text=text[start:end], start_char=start, end_char=end))
    return pages


def _pages_for_length(text: str, chars_per_page: int) -> int:
    return max(1, math.ceil(len(text) / chars_per_page))


def _partition_text(partition: Callable, data: bytes) -> str:
    elements = partition(file=io.BytesIO(data))
    return "\n\n".join(el.text.strip() for el in elements if getattr(el, "text", None) and el.text.strip())


class DocumentExtractor:
    """
    Format-dispatching extractor.
    PDF via PyMuPDF, Office formats via unstructured partitioners, TXT decoded as UTF-8.
    """

    def __init__(self, min_text_threshold: int = MIN_TEXT_THRESHOLD):
        self.min_text_threshold = min_text_threshold

    def extract(self, data: bytes, mime_type: str, filename: Optional[str] = None) -> ExtractionResult:
        """
        Extract text and approximate page boundaries.

        Raises:
            UnsupportedFormat: no extractor for the MIME type / extension
            ExtractionFailed: the underlying library rejected the file
        """
        file_type = detect_file_type(mime_type, filename)
        log.info("Stage extract: start file=%s type=%s bytes=%s", filename, file_type, len(data))

        handlers = {
            PDF: self._extract_pdf,
            DOCX: self._extract_docx,
            DOC: self._extract_doc,
            PPTX: self._extract_pptx,
            PPT: self._extract_ppt,
            TXT: self._extract_txt,
            IMAGE: self._extract_image,
        }
        try:
            text, page_count = handlers[file_type](data)
        except (UnsupportedFormat, ExtractionFailed):
            raise
        except Exception as e:
            raise ExtractionFailed(f"Failed to extract {file_type}: {e}") from e

        text = text or ""
        requires_ocr = len(text.strip()) < self.min_text_threshold
        pages = estimate_page_boundaries(text, page_count)
        log.info(
            "Stage extract: done file=%s chars=%s pages=%s requires_ocr=%s",
            filename, len(text), page_count, requires_ocr,
        )
        return ExtractionResult(
            text=text,
            page_count=page_count,
            pages=pages,
            requires_ocr=requires_ocr,
            file_type=file_type,
            metadata={"filename": filename or "", "mime_type": mime_type or ""},
        )

    # ─── Per-format handlers: return (text, page_count) ──────────────────────

    @staticmethod
    def _extract_pdf(data: bytes) -> Tuple[str, int]:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise ExtractionFailed(f"Invalid or corrupt PDF: {e}") from e
        try:
            if doc.needs_pass:
                raise ExtractionFailed("PDF is password-protected (encrypted)")
            page_texts = [page.get_text("text") for page in doc]
            page_count = doc.page_count or 1
        finally:
            doc.close()
        text = "\n\n".join(t.strip() for t in page_texts if t and t.strip())
        return text, page_count

    @staticmethod
    def _extract_docx(data: bytes) -> Tuple[str, int]:
        try:
            from unstructured.partition.docx import partition_docx
        except ImportError:
            raise RuntimeError("DOCX parsing requires: pip install unstructured[docx]")
        text = _partition_text(partition_docx, data)
        return text, _pages_for_length(text, DOCX_CHARS_PER_PAGE)

    @staticmethod
    def _extract_doc(data: bytes) -> Tuple[str, int]:
        # partition_doc converts through LibreOffice
        try:
            from unstructured.partition.doc import partition_doc
        except ImportError:
            raise RuntimeError("DOC parsing requires: pip install unstructured[doc]")
        text = _partition_text(partition_doc, data)
        return text, _pages_for_length(text, DOCX_CHARS_PER_PAGE)

    @staticmethod
    def _extract_pptx(data: bytes) -> Tuple[str, int]:
        try:
            from unstructured.partition.pptx import partition_pptx
        except ImportError:
            raise RuntimeError("PPTX parsing requires: pip install unstructured[pptx]")
        text = _partition_text(partition_pptx, data)
        return text, _pages_for_length(text, SLIDE_CHARS_PER_PAGE)

    @staticmethod
    def _extract_ppt(data: bytes) -> Tuple[str, int]:
        try:
            from unstructured.partition.ppt import partition_ppt
        except ImportError:
            raise RuntimeError("PPT parsing requires: pip install unstructured[ppt]")
        text = _partition_text(partition_ppt, data)
        return text, _pages_for_length(text, SLIDE_CHARS_PER_PAGE)

    @staticmethod
    def _extract_txt(data: bytes) -> Tuple[str, int]:
        return data.decode("utf-8", errors="replace"), 1

    @staticmethod
    def _extract_image(data: bytes) -> Tuple[str, int]:
        # No text layer; always routed to OCR
        return "", 1

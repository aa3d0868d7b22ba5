"""
Legacy (v1) single-pass extraction.

v1 materials keep their whole text in Material.content and have no segments.
Extraction is one pass through the format extractor; images, and documents
that yield fewer than LEGACY_MIN_TEXT_LENGTH chars, go straight to OCR.
The result is stored as-is; v1 content is neither cleaned nor segmented.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from studyforge.exceptions import InsufficientContent, OcrFailed
from .extractor import IMAGE, PDF, DocumentExtractor
from .ocr import OcrService, clean_ocr_text

log = logging.getLogger(__name__)

LEGACY_MIN_TEXT_LENGTH = 50


@dataclass
class LegacyExtraction:
    text: str
    is_ocr: bool = False
    ocr_confidence: Optional[float] = None


async def extract_legacy_content(
    data: bytes,
    mime_type: str,
    filename: Optional[str],
    extractor: DocumentExtractor,
    ocr: OcrService,
) -> LegacyExtraction:
    result = extractor.extract(data, mime_type, filename)
    text = result.text.strip()
    if len(text) >= LEGACY_MIN_TEXT_LENGTH:
        return LegacyExtraction(text=text)

    if result.file_type not in (PDF, IMAGE):
        raise InsufficientContent("Extracted text is too short or empty")

    log.info("Legacy extract: %s chars from %s, falling back to OCR", len(text), filename)
    try:
        if result.file_type == PDF:
            ocr_result = await ocr.extract_from_pdf(data)
        else:
            ocr_result = await ocr.extract_from_images([data])
    except OcrFailed as e:
        raise OcrFailed(f"Scanned PDF detected but OCR failed: {e}") from e

    ocr_text = clean_ocr_text(ocr_result.text)
    if len(ocr_text) < LEGACY_MIN_TEXT_LENGTH:
        raise InsufficientContent("Extracted text is too short or empty")
    return LegacyExtraction(text=ocr_text, is_ocr=True, ocr_confidence=ocr_result.confidence)

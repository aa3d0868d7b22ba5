"""
Page renderer for the OCR fallback.

Renders PDF pages to PNG bytes in memory with PyMuPDF (fitz). Scanned
documents longer than the page cap are truncated: only the first max_pages
pages are rendered and the rest are dropped with a warning.
"""

import logging
import os
from typing import List

import fitz  # PyMuPDF

log = logging.getLogger(__name__)

# 300 DPI is the usual sweet spot for Tesseract on printed text
RENDER_DPI = int(os.getenv("OCR_DPI", "300"))
OCR_MAX_PAGES = int(os.getenv("OCR_MAX_PAGES", "50"))


def render_pdf_pages(data: bytes, max_pages: int = OCR_MAX_PAGES, dpi: int = RENDER_DPI) -> List[bytes]:
    """
    Render the first max_pages pages of a PDF to PNG bytes.

    Args:
        data: PDF file content
        max_pages: Page cap; later pages are skipped
        dpi: Render resolution

    Returns:
        PNG bytes per page, in page order
    """
    images: List[bytes] = []
    with fitz.open(stream=data, filetype="pdf") as doc:
        total = doc.page_count
        if total > max_pages:
            log.warning(
                "OCR render: document has %s pages, only the first %s will be processed",
                total, max_pages,
            )
        zoom = dpi / 72.0
        mat = fitz.Matrix(zoom, zoom)
        for page_index in range(min(total, max_pages)):
            page = doc[page_index]
            pix = page.get_pixmap(matrix=mat, alpha=False)
            images.append(pix.tobytes("png"))
    log.info("OCR render: rendered pages=%s dpi=%s", len(images), dpi)
    return images

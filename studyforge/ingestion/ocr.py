"""
OCR fallback for scanned documents
Stage 1b of the document pipeline, only reached when extraction found too little text.

CONSTRAINTS:
- The OCR engine is an opaque service (Tesseract via pytesseract by default)
- Pages run in bounded parallel batches; page order is preserved
- A failing page yields empty text with zero confidence; it never fails the document
- Low average confidence is logged, never raised
"""

import asyncio
import io
import logging
import os
import re
from typing import Dict, List, Optional, Sequence, Tuple

import pytesseract
from PIL import Image

from studyforge.exceptions import OcrFailed
from .page_renderer import OCR_MAX_PAGES, RENDER_DPI, render_pdf_pages
from .schemas import OcrPage, OcrResult

log = logging.getLogger(__name__)

OCR_CONCURRENCY = int(os.getenv("OCR_CONCURRENCY", "4"))
OCR_LANGUAGE = os.getenv("OCR_LANGUAGE", "eng")
MIN_CONFIDENCE = 30.0


# ─── Engines ──────────────────────────────────────────────────────────────────

class OcrEngine:
    """Recognises one page image. Implementations must be thread-safe."""

    def recognize(self, image: bytes) -> Tuple[str, float]:
        """Return (text, confidence 0-100)"""
        raise NotImplementedError


class TesseractEngine(OcrEngine):
    """pytesseract wrapper; text is rebuilt from word boxes so confidence comes from the same pass."""

    def __init__(self, language: str = OCR_LANGUAGE):
        self.language = language

    def recognize(self, image: bytes) -> Tuple[str, float]:
        with Image.open(io.BytesIO(image)) as img:
            data = pytesseract.image_to_data(img, lang=self.language, output_type=pytesseract.Output.DICT)
        return _words_to_text(data), _mean_confidence(data)


def _words_to_text(data: Dict[str, list]) -> str:
    """Group Tesseract word boxes into lines and paragraphs"""
    lines: Dict[Tuple[int, int, int], List[str]] = {}
    for i, word in enumerate(data.get("text", [])):
        if not word or not word.strip():
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word.strip())

    paragraphs: List[str] = []
    current_par: Optional[Tuple[int, int]] = None
    current_lines: List[str] = []
    for (block, par, _line), words in sorted(lines.items()):
        if current_par is not None and (block, par) != current_par:
            paragraphs.append("\n".join(current_lines))
            current_lines = []
        current_par = (block, par)
        current_lines.append(" ".join(words))
    if current_lines:
        paragraphs.append("\n".join(current_lines))
    return "\n\n".join(paragraphs)


def _mean_confidence(data: Dict[str, list]) -> float:
    confs = []
    for word, conf in zip(data.get("text", []), data.get("conf", [])):
        try:
            value = float(conf)
        except (TypeError, ValueError):
            continue
        if value >= 0 and word and word.strip():
            confs.append(value)
    return sum(confs) / len(confs) if confs else 0.0


# ─── Service ──────────────────────────────────────────────────────────────────

class OcrService:
    """Runs an OcrEngine over page images with bounded concurrency."""

    def __init__(
        self,
        engine: Optional[OcrEngine] = None,
        concurrency: int = OCR_CONCURRENCY,
        max_pages: int = OCR_MAX_PAGES,
        dpi: int = RENDER_DPI,
    ):
        self.engine = engine or TesseractEngine()
        self.concurrency = max(1, concurrency)
        self.max_pages = max_pages
        self.dpi = dpi

    async def extract_from_pdf(self, data: bytes) -> OcrResult:
        """Rasterise (capped at max_pages) then OCR every page"""
        try:
            images = await asyncio.to_thread(render_pdf_pages, data, self.max_pages, self.dpi)
        except Exception as e:
            raise OcrFailed(f"Could not render PDF pages for OCR: {e}") from e
        if not images:
            raise OcrFailed("PDF has no pages to OCR")
        return await self.extract_from_images(images)

    async def extract_from_images(self, images: Sequence[bytes]) -> OcrResult:
        images = list(images)
        if len(images) > self.max_pages:
            log.warning(
                "OCR: %s page images given, only the first %s will be processed",
                len(images), self.max_pages,
            )
            images = images[: self.max_pages]
        log.info("OCR: start pages=%s concurrency=%s", len(images), self.concurrency)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _one(page_number: int, image: bytes) -> OcrPage:
            async with semaphore:
                try:
                    text, confidence = await asyncio.to_thread(self.engine.recognize, image)
                except Exception as e:
                    log.warning("OCR: page %s failed: %s", page_number, e)
                    return OcrPage(page_number=page_number, text="", confidence=0.0)
                return OcrPage(page_number=page_number, text=text or "", confidence=float(confidence or 0.0))

        pages = await asyncio.gather(*[_one(i + 1, img) for i, img in enumerate(images)])

        text = "\n\n".join(p.text.strip() for p in pages if p.text.strip())
        confidence = sum(p.confidence for p in pages) / len(pages) if pages else 0.0
        if confidence < MIN_CONFIDENCE:
            log.warning("OCR: low average confidence %.1f%% over %s pages", confidence, len(pages))
        log.info("OCR: done pages=%s chars=%s confidence=%.1f", len(pages), len(text), confidence)
        return OcrResult(text=text, confidence=confidence, page_count=len(pages), pages=list(pages))


# ─── OCR text cleanup ─────────────────────────────────────────────────────────

def clean_ocr_text(text: str) -> str:
    """Remove common OCR noise: table rules, dot leaders, stray single letters"""
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\|{2,}", "", text)
    text = re.sub(r"_{3,}", "", text)
    text = re.sub(r"\.{4,}", "...", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    # "w o r d" style noise: a lone letter between two lone letters
    text = re.sub(r"(?<=\s)[a-zA-Z]\s(?=[a-zA-Z]\s)", "", text)
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()

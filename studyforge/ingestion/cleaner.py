"""
Text cleaning
Stage 2 of the document pipeline: strip layout noise from extracted text.

NO AI/LLM usage - every pass is pattern based and deterministic.
The pass sequence is repeated until the text stops changing, so
clean_text(clean_text(x)) == clean_text(x).
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import List

log = logging.getLogger(__name__)

# Paragraph keys shorter than this are too generic to count as headers/footers
MIN_REPEAT_KEY_LENGTH = 10
REPEAT_KEY_CHARS = 100
REPEAT_MIN_OCCURRENCES = 3
MAX_PASSES = 10


@dataclass
class CleaningOptions:
    normalize_whitespace: bool = True
    remove_page_numbers: bool = True
    remove_headers: bool = True
    remove_footers: bool = True
    remove_watermarks: bool = True
    normalize_unicode: bool = True
    collapse_newlines: bool = True


class TextCleaner:
    """
    Deterministic text cleanup passes

    Removes:
    - Standalone page-number lines ("5", "Page 5 of 10", "- 5 -", "[5]", "5 / 10")
    - Paragraphs repeated on 3+ pages (running headers / footers)
    - Watermark lines and copyright notices
    - PDF encoding artifacts (CID) and private-use glyphs
    """

    PAGE_NUMBER_PATTERNS = [
        re.compile(r"^[ \t]*page[ \t]+\d+([ \t]+of[ \t]+\d+)?[ \t]*$", re.I | re.M),
        re.compile(r"^[ \t]*\d+[ \t]+of[ \t]+\d+[ \t]*$", re.I | re.M),
        re.compile(r"^[ \t]*\d{1,4}[ \t]*$", re.M),
        re.compile(r"^[ \t]*-[ \t]*\d+[ \t]*-[ \t]*$", re.M),
        re.compile(r"^[ \t]*\[[ \t]*\d+[ \t]*\][ \t]*$", re.M),
        re.compile(r"^[ \t]*\d+[ \t]*/[ \t]*\d+[ \t]*$", re.M),
    ]

    WATERMARK_PATTERNS = [
        re.compile(r"^[ \t]*(CONFIDENTIAL|DRAFT|SAMPLE|PREVIEW|WATERMARK)[ \t]*$", re.I | re.M),
        re.compile(r"(©|\(c\))[ \t]*\d{4}[^\n]*", re.I),
        re.compile(r"^[^\n]*all rights reserved[^\n]*$", re.I | re.M),
    ]

    UNICODE_REPLACEMENTS = [
        (re.compile(r"[\u2018\u2019\u201A\u201B]"), "'"),
        (re.compile(r"[\u201C\u201D\u201E\u201F]"), '"'),
        (re.compile(r"[\u2010-\u2015\u2212]"), "-"),
        (re.compile(r"…"), "..."),
        (re.compile(r"ﬀ"), "ff"),
        (re.compile(r"ﬁ"), "fi"),
        (re.compile(r"ﬂ"), "fl"),
        (re.compile(r"ﬃ"), "ffi"),
        (re.compile(r"ﬄ"), "ffl"),
        (re.compile(r"\(cid:\d+\)"), ""),
        (re.compile(r"[\uE000-\uF8FF]"), ""),
    ]

    def __init__(self, options: CleaningOptions = None):
        self.options = options or CleaningOptions()

    def clean(self, text: str) -> str:
        if not text:
            return ""
        previous = None
        cleaned = text
        passes = 0
        while cleaned != previous and passes < MAX_PASSES:
            previous = cleaned
            cleaned = self._clean_once(cleaned)
            passes += 1
        log.debug("Stage clean: %s -> %s chars in %s passes", len(text), len(cleaned), passes)
        return cleaned

    def _clean_once(self, text: str) -> str:
        opts = self.options
        if opts.normalize_whitespace:
            text = self.normalize_whitespace(text)
        if opts.remove_page_numbers:
            text = self.remove_page_numbers(text)
        if opts.remove_headers:
            text = self.remove_repeating_paragraphs(text, from_start=True)
        if opts.remove_footers:
            text = self.remove_repeating_paragraphs(text, from_start=False)
        if opts.remove_watermarks:
            text = self.remove_watermarks(text)
        if opts.normalize_unicode:
            text = self.normalize_unicode(text)
        if opts.collapse_newlines:
            text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

    # ─── Passes ───────────────────────────────────────────────────────────

    @staticmethod
    def normalize_whitespace(text: str) -> str:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = re.sub(r"[\u200B-\u200D\uFEFF]", "", text)
        text = re.sub(r"[\u00A0\u2000-\u200A\u202F\u205F\t]", " ", text)
        text = re.sub(r" {2,}", " ", text)
        text = re.sub(r" +\n", "\n", text)
        return text

    @classmethod
    def remove_page_numbers(cls, text: str) -> str:
        for pattern in cls.PAGE_NUMBER_PATTERNS:
            text = pattern.sub("", text)
        return text

    @staticmethod
    def _paragraph_key(paragraph: str, from_start: bool) -> str:
        flat = " ".join(paragraph.split()).lower()
        return flat[:REPEAT_KEY_CHARS] if from_start else flat[-REPEAT_KEY_CHARS:]

    @classmethod
    def remove_repeating_paragraphs(cls, text: str, from_start: bool = True) -> str:
        """Drop paragraphs whose first (or last) 100 chars occur 3+ times in the document"""
        paragraphs = re.split(r"\n{2,}", text)
        if len(paragraphs) < REPEAT_MIN_OCCURRENCES:
            return text
        keys = [cls._paragraph_key(p, from_start) for p in paragraphs]
        counts = Counter(k for k in keys if len(k) > MIN_REPEAT_KEY_LENGTH)
        repeated = {k for k, n in counts.items() if n >= REPEAT_MIN_OCCURRENCES}
        if not repeated:
            return text
        kept: List[str] = [p for p, k in zip(paragraphs, keys) if k not in repeated]
        log.debug(
            "Stage clean: removed %s repeating %s paragraphs",
            len(paragraphs) - len(kept), "header" if from_start else "footer",
        )
        return "\n\n".join(kept)

    @classmethod
    def remove_watermarks(cls, text: str) -> str:
        for pattern in cls.WATERMARK_PATTERNS:
            text = pattern.sub("", text)
        return text

    @classmethod
    def normalize_unicode(cls, text: str) -> str:
        for pattern, replacement in cls.UNICODE_REPLACEMENTS:
            text = pattern.sub(replacement, text)
        return text


def clean_text(text: str, options: CleaningOptions = None) -> str:
    """Run every enabled cleaning pass to a fixed point"""
    return TextCleaner(options).clean(text)

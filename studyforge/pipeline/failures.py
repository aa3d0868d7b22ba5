"""
User-facing failure reasons.

Technical errors are matched by message substring (case-insensitive) against
an ordered table; the first hit wins.
"""

from typing import List, Tuple

PASSWORD_PROTECTED = "This PDF is password-protected. Please remove the password and upload again."
OCR_FAILED = "This appears to be a scanned document and OCR could not extract readable text."
TOO_SHORT = "Not enough text content found. The document may be primarily images or very short."
UNSUPPORTED_FORMAT = "This file format is not supported. Please upload a PDF, DOCX, or TXT file."
TIMEOUT = "Processing took too long. The document may be too large or complex."
CORRUPT = "The file appears to be corrupted or invalid. Please try uploading again."
DOWNLOAD_FAILED = "Failed to download the file. Please try uploading again."
GENERIC = "An unexpected error occurred while processing this document. Please try again or contact support."

# Each entry: (all substrings that must be present, reason); any-of groups are separate entries
FAILURE_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("password",), PASSWORD_PROTECTED),
    (("encrypted",), PASSWORD_PROTECTED),
    (("scanned", "ocr failed"), OCR_FAILED),
    (("too short",), TOO_SHORT),
    (("empty",), TOO_SHORT),
    (("unsupported file type",), UNSUPPORTED_FORMAT),
    (("timeout",), TIMEOUT),
    (("timed out",), TIMEOUT),
    (("corrupt",), CORRUPT),
    (("invalid",), CORRUPT),
    (("download",), DOWNLOAD_FAILED),
]


def failure_reason(message: str) -> str:
    lowered = (message or "").lower()
    for needles, reason in FAILURE_RULES:
        if all(n in lowered for n in needles):
            return reason
    return GENERIC

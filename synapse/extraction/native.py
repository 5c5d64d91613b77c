"""Native (structural) text extraction for uploaded documents.

Architectural role:
- Convert document bytes whose format carries a text layer into plain text.
- First stage of the extraction pipeline; optical extraction is the fallback.

Supported media types:
- `application/pdf` via pdfplumber (page text, in page order).
- DOCX via python-docx (paragraph text).
- `text/plain` (UTF-8, undecodable bytes ignored).

Size validation:
- `validate_size` rejects payloads above `MAX_UPLOAD_MB` before any parsing.

Error handling strategy:
- Parser exceptions propagate; the pipeline decides whether to fall back.

Determinism considerations:
- Output may vary across pdfplumber/python-docx versions.
"""

import io
import os

import docx
import pdfplumber
from dotenv import load_dotenv

from synapse.core.request import DOCX_MEDIA_TYPE
from synapse.core.routing_types import PDF_MEDIA_TYPE

load_dotenv()


# ============================================================
# CONFIG
# ============================================================

MAX_FILE_SIZE_MB = float(os.getenv("MAX_UPLOAD_MB", "10"))
MAX_FILE_SIZE_BYTES = int(MAX_FILE_SIZE_MB * 1024 * 1024)

TEXT_MEDIA_TYPE = "text/plain"

NATIVE_TEXT_MEDIA_TYPES = frozenset({PDF_MEDIA_TYPE, DOCX_MEDIA_TYPE, TEXT_MEDIA_TYPE})


def validate_size(data: bytes) -> None:
    """Raise `ValueError` when the payload exceeds the configured maximum."""
    if len(data) > MAX_FILE_SIZE_BYTES:
        raise ValueError("File exceeds max size limit")


def supports_native(media_type: str) -> bool:
    return media_type in NATIVE_TEXT_MEDIA_TYPES


# ============================================================
# EXTRACTION ROUTER
# ============================================================

def extract_native_text(data: bytes, media_type: str) -> str:
    """Dispatch structural extraction based on normalized media type.

    Raises:
        ValueError: Unsupported media type.
        Exception: Whatever the underlying parser raises for corrupt input.
    """
    if media_type == PDF_MEDIA_TYPE:
        return _extract_pdf(data)

    if media_type == DOCX_MEDIA_TYPE:
        return _extract_docx(data)

    if media_type == TEXT_MEDIA_TYPE:
        return _extract_txt(data)

    raise ValueError(f"No native extractor for media type {media_type!r}")


# ============================================================
# PDF
# ============================================================

def _extract_pdf(data: bytes) -> str:
    """Extract text from each PDF page and concatenate with newlines."""
    text = []

    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages:
            text.append(page.extract_text() or "")

    return "\n".join(text)


# ============================================================
# TEXT
# ============================================================

def _extract_txt(data: bytes) -> str:
    """Decode UTF-8 text with decoding errors ignored."""
    return data.decode("utf-8", errors="ignore")


# ============================================================
# DOCX
# ============================================================

def _extract_docx(data: bytes) -> str:
    """Extract paragraph text from a DOCX document."""
    document = docx.Document(io.BytesIO(data))
    return "\n".join(p.text for p in document.paragraphs)

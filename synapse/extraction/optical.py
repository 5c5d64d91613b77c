"""Optical (OCR) extraction backends implementing the `OpticalExtractor` port.

Processing flow:
    1. `submit(bytes, media_type)` returns either immediate text or an operation
       handle.
    2. Handles are polled through `polling.poll_until_complete` on a fixed
       interval with a bounded number of checks.
    3. A succeeded operation yields line-level text joined in document order.

Backends:
    - `AzureDocumentIntelligenceExtractor`: remote asynchronous service (httpx).
      Submission answers `202` with an `Operation-Location` handle.
    - `TesseractExtractor`: local OCR with pytesseract; images are opened with
      Pillow, PDF pages are rasterised by pdfplumber. Always immediate.

Error handling strategy:
    - Misconfiguration, rejected submissions, failed operations, and unknown
      statuses raise `OpticalServiceError`.
    - Exhausting the poll bound raises `OpticalTimeoutError`.

Performance characteristics:
    - Remote polling waits `poll_interval_seconds` before every status check.
    - Local OCR runs in a worker thread via `asyncio.to_thread`.
"""

import asyncio
import io
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
import pdfplumber
import pytesseract
from dotenv import load_dotenv
from PIL import Image, UnidentifiedImageError

from synapse.core.ports import OpticalExtractor, OpticalStatus, OpticalSubmission, PollStatus
from synapse.core.routing_types import PDF_MEDIA_TYPE
from synapse.exceptions import OpticalServiceError
from synapse.extraction.polling import poll_until_complete

load_dotenv()


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpticalConfig:
    """Runtime configuration for optical extraction.

    Relevant environment variables:
        - `AZURE_DI_ENDPOINT`, `AZURE_DI_KEY`, `AZURE_DI_MODEL`,
          `AZURE_DI_API_VERSION`
        - `OCR_POLL_INTERVAL_SECONDS` (default 2)
        - `OCR_MAX_POLLS` (default 15)
        - `OCR_TIMEOUT_SECONDS` (per HTTP call)
        - `TESSERACT_LANG`
    """

    azure_endpoint: str = os.getenv("AZURE_DI_ENDPOINT", "").strip().rstrip("/")
    azure_key: str = os.getenv("AZURE_DI_KEY", "").strip()
    azure_model: str = os.getenv("AZURE_DI_MODEL", "prebuilt-layout").strip()
    azure_api_version: str = os.getenv("AZURE_DI_API_VERSION", "2023-07-31").strip()
    poll_interval_seconds: float = float(os.getenv("OCR_POLL_INTERVAL_SECONDS", "2"))
    max_polls: int = int(os.getenv("OCR_MAX_POLLS", "15"))
    request_timeout_seconds: float = float(os.getenv("OCR_TIMEOUT_SECONDS", "30"))
    tesseract_lang: str = os.getenv("TESSERACT_LANG", "eng").strip()

    @property
    def azure_configured(self) -> bool:
        return bool(self.azure_endpoint and self.azure_key)


# ============================================================
# AZURE DOCUMENT INTELLIGENCE
# ============================================================

_PENDING_STATUSES = {"running", "notstarted"}


def lines_from_analyze_result(analyze_result: dict[str, Any] | None) -> str:
    """Join page lines of an analyze result in document order."""
    if not analyze_result:
        return ""

    lines: list[str] = []
    for page in analyze_result.get("pages") or []:
        for line in page.get("lines") or []:
            content = line.get("content")
            if content:
                lines.append(content)

    return "\n".join(lines)


class AzureDocumentIntelligenceExtractor:
    """Remote asynchronous OCR via Azure Document Intelligence REST API."""

    def __init__(self, config: OpticalConfig) -> None:
        if not config.azure_configured:
            raise OpticalServiceError(
                "Azure Document Intelligence keys or endpoint are not configured."
            )
        self.config = config

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {"Ocp-Apim-Subscription-Key": self.config.azure_key}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    async def submit(self, data: bytes, media_type: str) -> OpticalSubmission:
        analyze_url = (
            f"{self.config.azure_endpoint}/formrecognizer/documentModels/"
            f"{self.config.azure_model}:analyze?api-version={self.config.azure_api_version}"
        )

        try:
            async with httpx.AsyncClient(timeout=self.config.request_timeout_seconds) as client:
                response = await client.post(
                    analyze_url,
                    headers=self._headers("application/octet-stream"),
                    content=data,
                )
        except httpx.HTTPError as exc:
            raise OpticalServiceError(f"Document analysis request failed: {exc}") from exc

        if response.status_code != 202:
            logger.warning("Azure DI rejected analysis: %s %s", response.status_code, response.text)
            raise OpticalServiceError(
                f"Document analysis failed with status {response.status_code}."
            )

        handle = response.headers.get("Operation-Location")
        if not handle:
            raise OpticalServiceError("No Operation-Location returned from Azure DI.")

        return OpticalSubmission(handle=handle)

    async def poll(self, handle: str) -> OpticalStatus:
        try:
            async with httpx.AsyncClient(timeout=self.config.request_timeout_seconds) as client:
                response = await client.get(handle, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise OpticalServiceError(f"Document analysis status check failed: {exc}") from exc

        status = str(data.get("status") or "").lower()

        if status in _PENDING_STATUSES:
            return OpticalStatus(PollStatus.PENDING)

        if status == "failed":
            error = (data.get("error") or {}).get("message") or "unknown error"
            return OpticalStatus(PollStatus.FAILED, error=error)

        if status == "succeeded":
            return OpticalStatus(
                PollStatus.SUCCEEDED,
                text=lines_from_analyze_result(data.get("analyzeResult")),
            )

        raise OpticalServiceError(f"Unexpected document analysis status: {status!r}")


# ============================================================
# LOCAL TESSERACT
# ============================================================

class TesseractExtractor:
    """Local OCR; every submission returns text immediately."""

    PDF_RESOLUTION = 300

    def __init__(self, config: OpticalConfig) -> None:
        self.config = config

    async def submit(self, data: bytes, media_type: str) -> OpticalSubmission:
        text = await asyncio.to_thread(self._ocr, data, media_type)
        return OpticalSubmission(text=text)

    async def poll(self, handle: str) -> OpticalStatus:
        raise OpticalServiceError("Local OCR does not create pollable operations.")

    def _ocr(self, data: bytes, media_type: str) -> str:
        try:
            if media_type == PDF_MEDIA_TYPE:
                return self._ocr_pdf(data)
            return self._ocr_image(data)
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as exc:
            raise OpticalServiceError(f"Tesseract OCR failed: {exc}") from exc
        except UnidentifiedImageError as exc:
            raise OpticalServiceError("Uploaded file is not a readable image.") from exc

    def _ocr_image(self, data: bytes) -> str:
        with Image.open(io.BytesIO(data)) as img:
            return pytesseract.image_to_string(img, lang=self.config.tesseract_lang)

    def _ocr_pdf(self, data: bytes) -> str:
        pages: list[str] = []
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page in pdf.pages:
                rendered = page.to_image(resolution=self.PDF_RESOLUTION).original
                pages.append(
                    pytesseract.image_to_string(rendered, lang=self.config.tesseract_lang)
                )
        return "\n".join(pages)


# ============================================================
# FACTORY + RUNNER
# ============================================================

def build_optical_extractor(config: OpticalConfig | None = None) -> OpticalExtractor:
    """Prefer the remote service when configured, else local Tesseract."""
    config = config or OpticalConfig()
    if config.azure_configured:
        return AzureDocumentIntelligenceExtractor(config)
    logger.info("Azure Document Intelligence not configured; using local Tesseract OCR")
    return TesseractExtractor(config)


async def run_optical_extraction(
    extractor: OpticalExtractor,
    data: bytes,
    media_type: str,
    interval: float,
    max_attempts: int,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> str:
    """Submit bytes and return text, polling when the backend hands back a handle."""
    submission = await extractor.submit(data, media_type)

    if submission.handle is None:
        return submission.text or ""

    final = await poll_until_complete(
        lambda: extractor.poll(submission.handle),
        lambda status: status.status,
        interval=interval,
        max_attempts=max_attempts,
        sleep=sleep,
        describe_failure=lambda status: f"Document analysis failed: {status.error}",
    )
    return final.text

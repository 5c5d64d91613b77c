"""Extraction pipeline: uploaded bytes -> normalized document text.

Processing lifecycle:
1. Native-text media types (PDF, DOCX, plain text) go through structural
   extraction first.
2. Fewer than `MIN_NATIVE_TEXT_CHARS` trimmed characters, or a native parser
   exception, triggers exactly one optical extraction on the same bytes. This is
   the scanned-image-inside-a-PDF case.
3. Other media types go straight to optical extraction.
4. Empty optical output is an `ExtractionError`; empty text is never a success.
5. Optionally, the text-generation capability regroups raw text into sections.

Interaction with core:
- Emits `thought` events only; the engine stores the result in the scratchpad.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable

from dotenv import load_dotenv

from synapse.core.events import Emitter
from synapse.core.ports import OpticalExtractor, TextGenerator
from synapse.exceptions import ExtractionError
from synapse.extraction.native import extract_native_text, supports_native, validate_size
from synapse.extraction.optical import OpticalConfig, run_optical_extraction
from synapse.prompting.prompt_builder import build_structuring_prompt

load_dotenv()


logger = logging.getLogger(__name__)

MIN_NATIVE_TEXT_CHARS = 50


@dataclass(frozen=True)
class ExtractionConfig:
    restructure: bool = os.getenv("EXTRACTION_RESTRUCTURE", "true").strip().lower() in ("1", "true", "yes")
    min_native_chars: int = MIN_NATIVE_TEXT_CHARS
    poll_interval_seconds: float = OpticalConfig().poll_interval_seconds
    max_polls: int = OpticalConfig().max_polls


class ExtractionPipeline:
    def __init__(
        self,
        optical: OpticalExtractor,
        generator: TextGenerator | None = None,
        config: ExtractionConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.optical = optical
        self.generator = generator
        self.config = config or ExtractionConfig()
        self.sleep = sleep

    async def extract(self, data: bytes, media_type: str, emit: Emitter) -> str:
        """Return normalized text for `data`.

        Raises:
            ExtractionError: Neither native nor optical extraction produced text.
            OpticalServiceError: The optical backend failed or timed out.
            GenerationError: Restructuring was enabled and failed.
        """
        try:
            validate_size(data)
        except ValueError as exc:
            raise ExtractionError(str(exc)) from exc

        text = ""

        if supports_native(media_type):
            native = await self._try_native(data, media_type)
            if native is not None and len(native.strip()) >= self.config.min_native_chars:
                text = native
            else:
                await emit.thought(
                    "\nDocument text layer is empty or too short. Falling back to OCR..."
                )

        if not text:
            text = await self._optical(data, media_type, emit)

        if not text.strip():
            raise ExtractionError(
                "Could not extract any meaningful text from the document using both "
                "text extraction and OCR."
            )

        if self.config.restructure and self.generator is not None:
            await emit.thought("\nStructuring extracted text...")
            structured = await self.generator.generate_text(build_structuring_prompt(text))
            if structured.strip():
                text = structured

        return text.strip()

    async def _try_native(self, data: bytes, media_type: str) -> str | None:
        try:
            return await asyncio.to_thread(extract_native_text, data, media_type)
        except Exception as exc:
            logger.warning("Native extraction failed for %s (%s); falling back to OCR", media_type, exc)
            return None

    async def _optical(self, data: bytes, media_type: str, emit: Emitter) -> str:
        await emit.thought("\nRunning optical text recognition...")
        return await run_optical_extraction(
            self.optical,
            data,
            media_type,
            interval=self.config.poll_interval_seconds,
            max_attempts=self.config.max_polls,
            sleep=self.sleep,
        )

"""Prompt-to-payload adapter implementing the text-generation port.

Architectural role:
    Provides the canonical text-generation entrypoint used by the engine and the
    pipelines. This module bridges prompt construction (`synapse.prompting`) to
    transport (`synapse.llm.client`).

Model call flow:
    prompt -> payload construction -> `client.send_request(...)` in a worker thread.

Streaming:
    OpenAI-compatible providers stream natively; each blocking `next()` on the
    transport generator runs through `asyncio.to_thread`. Providers that cannot
    stream return the whole text, which is replayed character by character with
    `STREAM_CHAR_DELAY` between characters. Chunk order is identical either way.

Structured output:
    `load_structured` turns JSON text (optionally wrapped in code fences) into
    Python data and raises `GenerationError` when it cannot.
"""

import asyncio
import json
import logging
import re
from typing import Any, AsyncGenerator, AsyncIterator

from synapse.exceptions import GenerationError
from synapse.llm.client import send_request
from synapse.llm.provider_config import (
    MODEL_NAME,
    PROVIDER,
    STREAM_CHAR_DELAY,
    SYSTEM_MESSAGE,
)


logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_STREAM_DONE = object()


def build_payload(prompt: str, system_prompt: str | None = None, model: str = MODEL_NAME) -> dict:
    """Wrap a prompt with the system message and shared sampling defaults.

    Parameter semantics:
        - `temperature=0.3`: low randomness; tools favour faithful output.
        - `top_p=0.9`: nucleus sampling cap.
    """
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt or SYSTEM_MESSAGE},
            {"role": "user", "content": prompt}
        ],
        "temperature": 0.3,
        "top_p": 0.9,
    }


def strip_code_fences(text: str) -> str:
    """Remove a leading/trailing Markdown code fence if present."""
    return _FENCE_PATTERN.sub("", text.strip()).strip()


def load_structured(text: str) -> Any:
    """Parse structured generation output.

    Raises:
        GenerationError: Empty text or text that is not valid JSON.
    """
    cleaned = strip_code_fences(text or "")
    if not cleaned:
        raise GenerationError("Model returned an empty structured response.")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise GenerationError("Model returned malformed structured output.") from exc


async def emulate_stream(text: str, delay: float = STREAM_CHAR_DELAY) -> AsyncIterator[str]:
    """Replay finished text one character at a time."""
    for char in text:
        yield char
        if delay > 0:
            await asyncio.sleep(delay)


class LLMTextGenerator:
    """`TextGenerator` port backed by the configured provider."""

    def __init__(
        self,
        provider: str = PROVIDER,
        model: str = MODEL_NAME,
        char_delay: float = STREAM_CHAR_DELAY,
    ) -> None:
        self.provider = provider
        self.model = model
        self.char_delay = char_delay

    async def generate_text(
        self,
        prompt: str,
        schema: dict[str, Any] | None = None,
        system_prompt: str | None = None,
    ) -> str:
        if not prompt or not prompt.strip():
            raise GenerationError("Empty prompt.")

        payload = build_payload(prompt, system_prompt, self.model)
        response = await asyncio.to_thread(send_request, payload, False, schema, self.provider)
        return str(response or "").strip()

    async def generate_text_stream(
        self,
        prompt: str,
        system_prompt: str | None = None,
    ) -> AsyncGenerator[str, None]:
        if not prompt or not prompt.strip():
            raise GenerationError("Empty prompt.")

        payload = build_payload(prompt, system_prompt, self.model)
        response = await asyncio.to_thread(send_request, payload, True, None, self.provider)

        if isinstance(response, str):
            async for char in emulate_stream(response, self.char_delay):
                yield char
            return

        iterator = iter(response)
        try:
            while True:
                chunk = await asyncio.to_thread(next, iterator, _STREAM_DONE)
                if chunk is _STREAM_DONE:
                    break
                yield chunk
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()

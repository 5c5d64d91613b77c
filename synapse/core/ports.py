"""Capability port contracts consumed by the engine and pipelines.

Architectural role:
    Narrow, typed boundaries to every external capability. Concrete adapters live
    in `synapse.nlp`, `synapse.llm`, `synapse.retrieval`, `synapse.analysis` and
    `synapse.extraction`; tests substitute in-memory fakes.

Failure contracts:
    - `IntentClassifier.classify` raises `ClassificationError`.
    - `TextGenerator` methods raise `GenerationError` (the stream may raise before
      the first chunk or mid-stream).
    - `SearchProvider.search` never raises; it returns `SearchResult.empty()`.
    - `TabularParser.parse` raises `ParseError`.
    - `OpticalExtractor.submit`/`poll` raise `OpticalServiceError`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncGenerator, Protocol

from synapse.core.routing_types import IntentDecision
from synapse.core.scratchpad import ExtractedTable


class IntentClassifier(Protocol):
    async def classify(self, text: str, media_type: str | None = None) -> IntentDecision:
        ...


class TextGenerator(Protocol):
    async def generate_text(
        self,
        prompt: str,
        schema: dict[str, Any] | None = None,
        system_prompt: str | None = None,
    ) -> str:
        """Return the whole generated text; JSON text when `schema` is given."""
        ...

    def generate_text_stream(
        self,
        prompt: str,
        system_prompt: str | None = None,
    ) -> AsyncGenerator[str, None]:
        """Return a finite, non-restartable stream of text chunks; closable via `aclose`."""
        ...


NO_SEARCH_RESULT = "Web search tool is currently unavailable or returned no results."


@dataclass(frozen=True)
class SearchResult:
    snippet: str
    url: str

    @classmethod
    def empty(cls) -> "SearchResult":
        return cls(snippet=NO_SEARCH_RESULT, url="")

    @property
    def is_empty(self) -> bool:
        return not self.url and (not self.snippet or self.snippet == NO_SEARCH_RESULT)


class SearchProvider(Protocol):
    async def search(self, query: str, max_results: int = 3) -> SearchResult:
        ...


class TabularParser(Protocol):
    async def parse(self, data: bytes) -> ExtractedTable:
        ...


class PollStatus(str, Enum):
    """Classification of one optical-operation status check."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class OpticalSubmission:
    """Result of submitting bytes: immediate text, or a handle to poll."""

    text: str | None = None
    handle: str | None = None


@dataclass(frozen=True)
class OpticalStatus:
    status: PollStatus
    text: str = ""
    error: str | None = None


class OpticalExtractor(Protocol):
    async def submit(self, data: bytes, media_type: str) -> OpticalSubmission:
        ...

    async def poll(self, handle: str) -> OpticalStatus:
        ...

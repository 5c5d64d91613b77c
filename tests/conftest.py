"""
Shared fixtures and in-memory port fakes for the test suite.
"""

import pytest

from synapse.analysis.csv_parser import PandasTabularParser
from synapse.core.engine import Engine
from synapse.core.events import Emitter
from synapse.core.ports import OpticalStatus, OpticalSubmission, PollStatus, SearchResult
from synapse.core.routing_types import IntentDecision
from synapse.exceptions import ClassificationError, GenerationError, OpticalServiceError
from synapse.extraction.pipeline import ExtractionConfig, ExtractionPipeline


class FakeGenerator:
    """Scripted `TextGenerator`: `responses` are consumed in order."""

    def __init__(self, responses=None, stream_chunks=None):
        self.responses = list(responses or [])
        self.stream_chunks = list(stream_chunks if stream_chunks is not None else ["Hello", " world"])
        self.prompts = []
        self.schemas = []
        self.stream_prompts = []

    async def generate_text(self, prompt, schema=None, system_prompt=None):
        self.prompts.append(prompt)
        self.schemas.append(schema)
        if not self.responses:
            raise GenerationError("no scripted response")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def generate_text_stream(self, prompt, system_prompt=None):
        self.stream_prompts.append(prompt)
        for chunk in self.stream_chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


class ClosableGenerator(FakeGenerator):
    """`FakeGenerator` whose stream records whether it was closed and how far it got."""

    def __init__(self, stream_chunks):
        super().__init__(stream_chunks=stream_chunks)
        self.yielded = []
        self.stream_closed = False

    async def generate_text_stream(self, prompt, system_prompt=None):
        self.stream_prompts.append(prompt)
        try:
            for chunk in self.stream_chunks:
                self.yielded.append(chunk)
                yield chunk
        finally:
            self.stream_closed = True


class FakeSearch:
    """`SearchProvider` answering from a dict; unknown queries get an empty result."""

    def __init__(self, results=None):
        self.results = dict(results or {})
        self.calls = []

    async def search(self, query, max_results=3):
        self.calls.append((query, max_results))
        return self.results.get(query, SearchResult.empty())


class FakeClassifier:
    def __init__(self, decision=None, error=None):
        self.decision = decision
        self.error = error
        self.calls = []

    async def classify(self, text, media_type=None):
        self.calls.append((text, media_type))
        if self.error is not None:
            raise self.error
        return self.decision


class FakeOptical:
    """`OpticalExtractor` returning immediate text, or a handle polled through `statuses`."""

    def __init__(self, text="", statuses=None):
        self.text = text
        self.statuses = list(statuses or [])
        self.submissions = 0
        self.polls = 0

    async def submit(self, data, media_type):
        self.submissions += 1
        if self.statuses:
            return OpticalSubmission(handle="op-1")
        return OpticalSubmission(text=self.text)

    async def poll(self, handle):
        self.polls += 1
        if not self.statuses:
            raise OpticalServiceError("no scripted status")
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


class CollectingSink:
    """`EventSink` recording events; closes itself after `close_after` events."""

    def __init__(self, close_after=None):
        self.events = []
        self.close_after = close_after
        self._closed = False

    @property
    def closed(self):
        return self._closed

    async def send(self, event):
        self.events.append(event)
        if self.close_after is not None and len(self.events) >= self.close_after:
            self._closed = True

    def kinds(self):
        return [event.kind.value for event in self.events]

    def payloads(self, kind):
        return [event.payload for event in self.events if event.kind.value == kind]


async def no_sleep(_seconds):
    return None


def pending(n):
    return [OpticalStatus(PollStatus.PENDING)] * n


def succeeded(text):
    return OpticalStatus(PollStatus.SUCCEEDED, text=text)


def decision(tool, argument=""):
    return IntentDecision(tool, argument)


@pytest.fixture
def sink():
    return CollectingSink()


@pytest.fixture
def emitter(sink):
    return Emitter(sink)


@pytest.fixture
def make_engine():
    """Build an `Engine` over fakes; every argument may be overridden."""

    def _make(classifier=None, generator=None, search=None, optical=None):
        generator = generator or FakeGenerator()
        extraction = ExtractionPipeline(
            optical or FakeOptical(),
            generator=None,
            config=ExtractionConfig(restructure=False, poll_interval_seconds=0, max_polls=15),
            sleep=no_sleep,
        )
        return Engine(
            classifier=classifier or FakeClassifier(error=ClassificationError("offline")),
            generator=generator,
            search=search or FakeSearch(),
            tabular_parser=PandasTabularParser(),
            extraction=extraction,
        )

    return _make

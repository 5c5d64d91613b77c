"""
Tests for progress events, the emitter, the event channel and sessions.
"""

import asyncio
import json

import pytest

from conftest import CollectingSink
from synapse.core.events import Emitter, EventChannel, EventKind, ProgressEvent
from synapse.core.request import AgentRequest, UploadedFile, normalize_media_type
from synapse.core.scratchpad import EmailDraft, Scratchpad
from synapse.core.session import SessionRegistry
from synapse.exceptions import PreconditionError, StreamClosedError


class TestProgressEvent:

    def test_wire_format(self):
        line = ProgressEvent(EventKind.FINAL_OUTPUT, "Done ✓").to_json_line()

        assert line.endswith("\n")
        assert json.loads(line) == {"type": "final_output", "data": "Done ✓"}


class TestEmitter:

    @pytest.mark.asyncio
    async def test_emits_in_order(self):
        sink = CollectingSink()
        emit = Emitter(sink)

        await emit.thought("one")
        await emit.text("two")
        await emit.emit(EventKind.CHART, {"type": "BarChart"})

        assert sink.kinds() == ["thought", "text", "chart"]

    @pytest.mark.asyncio
    async def test_closed_sink_raises(self):
        sink = CollectingSink(close_after=1)
        emit = Emitter(sink)
        await emit.thought("one")

        with pytest.raises(StreamClosedError):
            await emit.thought("two")
        assert len(sink.events) == 1


class TestEventChannel:

    @pytest.mark.asyncio
    async def test_consumer_sees_events_until_finish(self):
        channel = EventChannel(maxsize=2)

        async def produce():
            for i in range(5):
                await channel.send(ProgressEvent(EventKind.TEXT, str(i)))
            await channel.finish()

        producer = asyncio.create_task(produce())
        received = [event.payload async for event in channel]
        await producer

        assert received == ["0", "1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_close_unblocks_producer_and_rejects_sends(self):
        channel = EventChannel(maxsize=1)
        await channel.send(ProgressEvent(EventKind.TEXT, "a"))

        blocked = asyncio.create_task(channel.send(ProgressEvent(EventKind.TEXT, "b")))
        await asyncio.sleep(0)
        assert not blocked.done()

        channel.close()
        await asyncio.wait_for(blocked, timeout=1)

        assert channel.closed
        with pytest.raises(StreamClosedError):
            await channel.send(ProgressEvent(EventKind.TEXT, "c"))

    @pytest.mark.asyncio
    async def test_send_after_finish_raises(self):
        channel = EventChannel()
        await channel.finish()

        with pytest.raises(StreamClosedError):
            await channel.send(ProgressEvent(EventKind.TEXT, "late"))


class TestScratchpadAndSessions:

    def test_preconditions_name_the_remedy(self):
        pad = Scratchpad()

        with pytest.raises(PreconditionError, match="upload a PDF"):
            pad.require_text("Please upload a PDF first.")
        with pytest.raises(PreconditionError):
            pad.require_table("Please upload a CSV.")

    def test_clear_resets_every_field(self):
        pad = Scratchpad(extracted_text="t", draft_artifact=EmailDraft("a@b.c", "s", "<p/>"))
        pad.clear()

        assert pad == Scratchpad()

    def test_sessions_are_isolated(self):
        registry = SessionRegistry()
        first = registry.get_or_create("a")
        second = registry.get_or_create("b")
        first.scratchpad.store_text("only in a")

        assert registry.get_or_create("a") is first
        assert second.scratchpad.extracted_text is None
        assert len(registry) == 2

    def test_blank_id_creates_new_session(self):
        registry = SessionRegistry()

        session = registry.get_or_create("  ")

        assert session.session_id
        assert registry.get(session.session_id) is session
        assert registry.discard(session.session_id)
        assert not registry.discard(session.session_id)


class TestRequestModel:

    def test_media_type_is_normalized(self):
        assert normalize_media_type("Text/CSV; charset=utf-8") == "text/csv"

    def test_media_type_is_guessed_from_name(self):
        assert normalize_media_type(None, "report.pdf") == "application/pdf"
        assert normalize_media_type("", None) == "application/octet-stream"

    def test_request_message_is_trimmed(self):
        request = AgentRequest(text="  hi  ", file=UploadedFile.from_upload(b"x", "", "a.csv"))

        assert request.message == "hi"
        assert request.media_type == "text/csv"

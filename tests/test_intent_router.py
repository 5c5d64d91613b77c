"""
Tests for intent classification and the file-override policy.
"""

import json

import pytest

from conftest import FakeGenerator
from synapse.core.routing_types import IntentDecision, Tool, apply_file_override
from synapse.exceptions import ClassificationError, GenerationError
from synapse.nlp.intent_router import INTENT_SCHEMA, IntentRouter, parse_decision, parse_hard_prefix


class TestHardPrefix:

    def test_known_prefix_bypasses_model(self):
        assert parse_hard_prefix("/web_search latest pandas release") == IntentDecision(
            Tool.WEB_SEARCH, "latest pandas release"
        )

    def test_unknown_prefix_is_not_a_command(self):
        assert parse_hard_prefix("/mode physics") is None

    def test_plain_text(self):
        assert parse_hard_prefix("hello") is None

    @pytest.mark.asyncio
    async def test_router_uses_prefix_without_generation(self):
        generator = FakeGenerator()

        result = await IntentRouter(generator).classify("/verify_claims check the numbers")

        assert result == IntentDecision(Tool.VERIFY_CLAIMS, "check the numbers")
        assert generator.prompts == []


class TestModelClassification:

    @pytest.mark.asyncio
    async def test_structured_output_is_validated(self):
        generator = FakeGenerator(responses=[json.dumps({"tool": "analyze_data", "argument": "plot sales"})])

        result = await IntentRouter(generator).classify("plot my sales", "text/csv")

        assert result == IntentDecision(Tool.ANALYZE_DATA, "plot sales")
        assert generator.schemas == [INTENT_SCHEMA]
        assert "text/csv" in generator.prompts[0]

    @pytest.mark.asyncio
    async def test_fenced_json_is_accepted(self):
        raw = '```json\n{"tool": "web_search", "argument": "weather"}\n```'
        result = await IntentRouter(FakeGenerator(responses=[raw])).classify("weather?")

        assert result.selected_tool is Tool.WEB_SEARCH

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            json.dumps({"tool": "send_email", "argument": "x"}),
            json.dumps({"tool": "make_coffee"}),
            json.dumps(["general_query"]),
            "not json",
            "",
        ],
    )
    async def test_unusable_output_raises(self, raw):
        with pytest.raises(ClassificationError):
            await IntentRouter(FakeGenerator(responses=[raw])).classify("hi")

    @pytest.mark.asyncio
    async def test_generation_failure_raises_classification_error(self):
        generator = FakeGenerator(responses=[GenerationError("GROQ HTTP ERROR (429)")])

        with pytest.raises(ClassificationError):
            await IntentRouter(generator).classify("hi")

    def test_blank_argument_falls_back_to_message(self):
        assert parse_decision({"tool": "general_query", "argument": " "}, "hello") == IntentDecision(
            Tool.GENERAL_QUERY, "hello"
        )


class TestFileOverride:

    def test_no_file_keeps_decision(self):
        original = IntentDecision(Tool.WEB_SEARCH, "news")

        assert apply_file_override(original, False, None, "news") == (original, False)

    def test_unknown_media_type_maps_to_ocr(self):
        result, overridden = apply_file_override(
            IntentDecision(Tool.GENERAL_QUERY, "x"), True, "application/octet-stream", "what is this"
        )

        assert overridden
        assert result == IntentDecision(Tool.RUN_OCR, "what is this")

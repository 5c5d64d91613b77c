"""
Tests for the provider client and the text-generation adapter.
"""

import pytest
import requests

from synapse.exceptions import GenerationError
from synapse.llm import client, service
from synapse.llm.service import LLMTextGenerator, build_payload, load_structured


class FakeResponse:
    def __init__(self, data=None, status_code=200):
        self._data = data
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        return self._data


@pytest.fixture
def captured_post(monkeypatch):
    calls = []

    def install(response):
        def fake_post(url, headers=None, json=None, timeout=None, stream=False):
            calls.append({"url": url, "headers": headers, "json": json})
            return response

        monkeypatch.setattr(client.requests, "post", fake_post)
        return calls

    return install


class TestSendRequest:

    def test_openai_compatible_structured_request(self, captured_post):
        calls = captured_post(FakeResponse({"choices": [{"message": {"content": ' {"a": 1} '}}]}))
        schema = {"type": "object"}

        result = client.send_request(build_payload("hi"), stream=False, schema=schema, provider="ollama")

        assert result == '{"a": 1}'
        body = calls[0]["json"]
        assert body["stream"] is False
        assert body["response_format"]["json_schema"]["schema"] == schema

    def test_http_error_is_sanitized(self, captured_post):
        captured_post(FakeResponse({"secret": "body"}, status_code=500))

        with pytest.raises(GenerationError, match=r"OLLAMA HTTP ERROR \(500\)"):
            client.send_request(build_payload("hi"), stream=False, provider="ollama")

    def test_malformed_response(self, captured_post):
        captured_post(FakeResponse({"choices": []}))

        with pytest.raises(GenerationError, match="RESPONSE MALFORMED"):
            client.send_request(build_payload("hi"), stream=False, provider="ollama")

    def test_unknown_provider(self):
        with pytest.raises(GenerationError, match="INVALID PROVIDER"):
            client.send_request(build_payload("hi"), stream=False, provider="nope")

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setitem(client.PROVIDERS, "openai", {"url": "https://x", "key_file": "missing/openai.key"})

        with pytest.raises(GenerationError, match="KEY FILE NOT FOUND"):
            client.send_request(build_payload("hi"), stream=False, provider="openai")

    def test_gemini_native_schema(self, captured_post, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        calls = captured_post(
            FakeResponse({"candidates": [{"content": {"parts": [{"text": "[1, "}, {"text": "2]"}]}}]})
        )

        result = client.send_request(
            build_payload("list", system_prompt="be terse"),
            stream=False,
            schema={"type": "array"},
            provider="gemini",
        )

        assert result == "[1, 2]"
        body = calls[0]["json"]
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert body["generationConfig"]["responseSchema"] == {"type": "array"}
        assert body["systemInstruction"] == {"parts": [{"text": "be terse"}]}

    def test_anthropic_schema_instruction(self, captured_post, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
        calls = captured_post(FakeResponse({"content": [{"text": "{}"}]}))

        client.send_request(build_payload("x"), stream=False, schema={"type": "object"}, provider="anthropic")

        assert "JSON schema" in calls[0]["json"]["system"]


class TestStructuredOutput:

    def test_fenced_json(self):
        assert load_structured('```json\n{"tool": "web_search"}\n```') == {"tool": "web_search"}

    @pytest.mark.parametrize("raw", ["", "   ", "{broken"])
    def test_unusable_text(self, raw):
        with pytest.raises(GenerationError):
            load_structured(raw)


class TestGenerator:

    @pytest.mark.asyncio
    async def test_non_streaming_provider_is_emulated_per_character(self, monkeypatch):
        monkeypatch.setattr(service, "send_request", lambda payload, stream, schema, provider: "abc")

        generator = LLMTextGenerator(provider="anthropic", char_delay=0)
        chunks = [chunk async for chunk in generator.generate_text_stream("hi")]

        assert chunks == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_native_stream_is_forwarded_in_order(self, monkeypatch):
        monkeypatch.setattr(service, "send_request", lambda payload, stream, schema, provider: iter(["Hel", "lo"]))

        chunks = [chunk async for chunk in LLMTextGenerator(provider="ollama").generate_text_stream("hi")]

        assert chunks == ["Hel", "lo"]

    @pytest.mark.asyncio
    async def test_mid_stream_failure_propagates(self, monkeypatch):
        def broken_stream():
            yield "partial"
            raise GenerationError("OLLAMA HTTP ERROR")

        monkeypatch.setattr(service, "send_request", lambda payload, stream, schema, provider: broken_stream())

        received = []
        with pytest.raises(GenerationError):
            async for chunk in LLMTextGenerator(provider="ollama").generate_text_stream("hi"):
                received.append(chunk)

        assert received == ["partial"]

    @pytest.mark.asyncio
    async def test_generate_text_passes_schema(self, monkeypatch):
        seen = {}

        def fake_send(payload, stream, schema, provider):
            seen.update(stream=stream, schema=schema, provider=provider)
            return " {} "

        monkeypatch.setattr(service, "send_request", fake_send)

        result = await LLMTextGenerator(provider="groq").generate_text("hi", schema={"type": "object"})

        assert result == "{}"
        assert seen == {"stream": False, "schema": {"type": "object"}, "provider": "groq"}

    @pytest.mark.asyncio
    async def test_empty_prompt(self):
        with pytest.raises(GenerationError):
            await LLMTextGenerator().generate_text("  ")

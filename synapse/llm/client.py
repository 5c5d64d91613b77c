"""Provider-specific transport client for LLM requests.

Architectural role:
    Executes HTTP requests against configured model providers and normalizes response
    materialization for streaming and non-streaming paths.

Model invocation flow:
    `service.LLMTextGenerator` -> `send_request(payload, stream, schema)` -> provider
    branch (OpenAI-compatible / Anthropic / Gemini) -> parsed text or streamed deltas.

Structured output:
    When `schema` is given the request asks for JSON conforming to it: natively via
    `response_format` (OpenAI-compatible) or `responseSchema` (Gemini), and through
    an appended system instruction for Anthropic.

Retry behavior:
    No retry loop is implemented. Each HTTP call is attempted once with the
    configured timeout.

Failure handling model:
    Every failure raises `GenerationError` carrying a sanitized, provider-labeled
    message; raw response bodies are only logged.
"""

import json
import logging

import requests

from synapse.exceptions import GenerationError
from synapse.llm.provider_config import (
    PROVIDER,
    MODEL_NAME,
    PROVIDERS,
    NON_OPENAI_PROVIDERS,
    ANTHROPIC_URL,
    GEMINI_URL_TEMPLATE,
    LLM_TIMEOUT_SECONDS,
    load_key,
)


logger = logging.getLogger(__name__)


def _build_sanitized_http_error(provider_name: str, err: requests.exceptions.RequestException) -> str:
    """Build provider-labeled HTTP error text without exposing raw internals.

    Args:
        provider_name: Active provider label.
        err: Request exception instance.

    Returns:
        Sanitized error string with optional status code.
    """
    status_code = None
    if getattr(err, "response", None) is not None:
        status_code = getattr(err.response, "status_code", None)

    label = str(provider_name or "provider").upper()
    if status_code:
        return f"{label} HTTP ERROR ({status_code})"
    return f"{label} HTTP ERROR"


def _schema_instruction(schema: dict) -> str:
    return (
        "Respond ONLY with JSON that conforms to this JSON schema. "
        "Do not add commentary or code fences.\n"
        f"{json.dumps(schema)}"
    )


def _extract_openai_delta(data: dict) -> str | None:
    """Pull incremental text out of common OpenAI-compatible chunk shapes."""
    if "choices" in data and data["choices"]:
        choice = data["choices"][0]

        if "delta" in choice and choice["delta"].get("content"):
            return choice["delta"]["content"]

        if "message" in choice and choice["message"].get("content"):
            return choice["message"]["content"]

        if choice.get("text"):
            return choice["text"]

    elif "message" in data and isinstance(data["message"], dict):
        return data["message"].get("content")

    return None


def send_request(payload: dict, stream: bool, schema: dict | None = None, provider: str = PROVIDER):
    """Send one request to the configured provider and parse response content.

    Args:
        payload: Provider-agnostic request payload (`model`, `messages`, sampling
            parameters) produced by `service`.
        stream: Streaming preference. Only OpenAI-compatible providers stream;
            the other branches always return the full text.
        schema: Optional JSON schema for structured output.
        provider: Provider key, defaults to `PROVIDER`.

    Returns:
        - Generator of text deltas for OpenAI-compatible stream mode.
        - Final response string otherwise.

    Raises:
        GenerationError: Missing key, unknown provider, HTTP/transport failure, or a
            response without extractable text.
    """
    try:
        if provider in PROVIDERS and provider not in NON_OPENAI_PROVIDERS:
            return _send_openai_compatible(provider, payload, stream, schema)

        if provider == "anthropic":
            return _send_anthropic(payload, schema)

        if provider == "gemini":
            return _send_gemini(payload, schema)

    except requests.exceptions.RequestException as err:
        logger.warning("LLM request failed: %s", err)
        raise GenerationError(_build_sanitized_http_error(provider, err)) from err

    except (KeyError, IndexError, TypeError, ValueError) as err:
        logger.warning("LLM response could not be parsed: %s", err)
        raise GenerationError(f"{provider.upper()} RESPONSE MALFORMED") from err

    raise GenerationError(f"INVALID PROVIDER: {provider}")


# =========================================================
# OPENAI-COMPATIBLE
# =========================================================

def _send_openai_compatible(provider: str, payload: dict, stream: bool, schema: dict | None):
    config = PROVIDERS[provider]
    url = config["url"]
    key_file = config["key_file"]

    headers = {
        "Content-Type": "application/json"
    }

    if key_file:
        api_key = load_key(key_file)
        if not api_key:
            raise GenerationError(f"{provider.upper()} KEY FILE NOT FOUND")

        headers["Authorization"] = f"Bearer {api_key}"

    body = dict(payload)
    body["stream"] = bool(stream)
    if schema is not None:
        body["response_format"] = {
            "type": "json_schema",
            "json_schema": {"name": "structured_output", "schema": schema},
        }

    if stream:

        def stream_generator():
            """Yield incremental text deltas from OpenAI-compatible streams.

            Behavior:
                - Parses line-delimited JSON chunks (`data: {...}` SSE framing).
                - Stops at `[DONE]`.

            Error handling:
                Transport failures raise `GenerationError`, before the first chunk
                or mid-stream.
            """
            try:
                with requests.post(
                    url,
                    headers=headers,
                    json=body,
                    stream=True,
                    timeout=LLM_TIMEOUT_SECONDS,
                ) as response:

                    response.raise_for_status()
                    response.encoding = "utf-8"

                    for line in response.iter_lines(decode_unicode=True):

                        if not line:
                            continue

                        if line.startswith("data: "):
                            line = line[6:]

                        if line.strip() == "[DONE]":
                            break

                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            continue

                        delta = _extract_openai_delta(data)
                        if delta:
                            yield delta

            except requests.exceptions.RequestException as err:
                logger.warning("LLM stream failed: %s", err)
                raise GenerationError(_build_sanitized_http_error(provider, err)) from err

        return stream_generator()

    response = requests.post(
        url,
        headers=headers,
        json=body,
        timeout=LLM_TIMEOUT_SECONDS,
    )

    response.raise_for_status()
    data = response.json()

    return (data["choices"][0]["message"]["content"] or "").strip()


# =========================================================
# ANTHROPIC
# =========================================================

def _send_anthropic(payload: dict, schema: dict | None) -> str:
    api_key = load_key(PROVIDERS["anthropic"]["key_file"])
    if not api_key:
        raise GenerationError("ANTHROPIC KEY FILE NOT FOUND")

    headers = {
        "x-api-key": api_key,
        "anthropic-version": "2023-06-01",
        "Content-Type": "application/json",
    }

    system_parts = []
    anthropic_messages = []

    for msg in payload.get("messages", []):
        if not isinstance(msg, dict):
            continue

        role = msg.get("role")
        content = msg.get("content", "")

        if role == "system":
            if isinstance(content, str) and content.strip():
                system_parts.append(content.strip())
        elif role in ["user", "assistant"]:
            anthropic_messages.append({
                "role": role,
                "content": content,
            })

    if schema is not None:
        system_parts.append(_schema_instruction(schema))

    anthropic_payload = {
        "model": payload.get("model", MODEL_NAME),
        "max_tokens": payload.get("max_tokens", 2048),
        "messages": anthropic_messages,
    }

    if system_parts:
        anthropic_payload["system"] = "\n\n".join(system_parts)

    if "temperature" in payload:
        anthropic_payload["temperature"] = payload["temperature"]

    response = requests.post(
        ANTHROPIC_URL,
        headers=headers,
        json=anthropic_payload,
        timeout=LLM_TIMEOUT_SECONDS,
    )

    response.raise_for_status()
    data = response.json()

    return data["content"][0]["text"].strip()


# =========================================================
# GEMINI
# =========================================================

def _send_gemini(payload: dict, schema: dict | None) -> str:
    api_key = load_key(PROVIDERS["gemini"]["key_file"])
    if not api_key:
        raise GenerationError("GEMINI KEY FILE NOT FOUND")

    url = GEMINI_URL_TEMPLATE.format(model=payload.get("model", MODEL_NAME))

    headers = {
        "x-goog-api-key": api_key,
        "Content-Type": "application/json",
    }

    gemini_contents = []
    system_parts = []

    for msg in payload.get("messages", []):
        if not isinstance(msg, dict):
            continue

        role = msg.get("role")
        content = msg.get("content", "")

        if not content:
            continue

        if role == "system":
            system_parts.append({"text": str(content)})
        elif role == "assistant":
            gemini_contents.append({"role": "model", "parts": [{"text": str(content)}]})
        elif role == "user":
            gemini_contents.append({"role": "user", "parts": [{"text": str(content)}]})

    gemini_payload = {
        "contents": gemini_contents,
    }

    if system_parts:
        gemini_payload["systemInstruction"] = {"parts": system_parts}

    generation_config = {}
    if "temperature" in payload:
        generation_config["temperature"] = payload["temperature"]
    if "top_p" in payload:
        generation_config["topP"] = payload["top_p"]
    if schema is not None:
        generation_config["responseMimeType"] = "application/json"
        generation_config["responseSchema"] = schema
    if generation_config:
        gemini_payload["generationConfig"] = generation_config

    response = requests.post(
        url,
        headers=headers,
        json=gemini_payload,
        timeout=LLM_TIMEOUT_SECONDS,
    )

    response.raise_for_status()
    data = response.json()

    parts = data["candidates"][0]["content"]["parts"]
    return "".join(part.get("text", "") for part in parts).strip()

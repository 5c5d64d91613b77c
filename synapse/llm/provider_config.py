"""Provider/runtime configuration for the LLM layer.

Architectural role:
    Centralizes model/provider selection and credential lookup for
    `synapse.llm.service` and `synapse.llm.client`.

Model call flow integration:
    - `service.LLMTextGenerator` consumes `SYSTEM_MESSAGE` and `STREAM_CHAR_DELAY`.
    - `client.send_request` consumes provider endpoint maps and key resolution.

Determinism:
    Deterministic for a fixed process environment and key files. Values are resolved
    at import time (plus runtime key-file reads in `load_key`).

Failure behavior:
    Missing key material is represented as `None` and turned into a
    `GenerationError` by `client`.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# Primary model routing controls.
PROVIDER = os.getenv("PROVIDER", "ollama").strip().lower()
MODEL_NAME = os.getenv("MODEL_NAME", "llama3.2")

LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "120"))

# Per-character delay used when a provider cannot stream natively.
STREAM_CHAR_DELAY = float(os.getenv("STREAM_CHAR_DELAY", "0.005"))

# Providers that speak the OpenAI chat-completions protocol, including streaming.
PROVIDERS = {

    "local": {
        "url": "http://127.0.0.1:8080/v1/chat/completions",
        "key_file": None
    },

    "ollama": {
        "url": os.getenv("OLLAMA_ENDPOINT", "http://localhost:11434/v1/chat/completions"),
        "key_file": None
    },

    "openai": {
        "url": "https://api.openai.com/v1/chat/completions",
        "key_file": "config/openai.key"
    },

    "groq": {
        "url": "https://api.groq.com/openai/v1/chat/completions",
        "key_file": "config/groq.key"
    },

    "together": {
        "url": "https://api.together.xyz/v1/chat/completions",
        "key_file": "config/together.key"
    },

    "openrouter": {
        "url": "https://openrouter.ai/api/v1/chat/completions",
        "key_file": "config/openrouter.key"
    },

    "mistral": {
        "url": "https://api.mistral.ai/v1/chat/completions",
        "key_file": "config/mistral.key"
    },

    "anthropic": {
        "url": "https://api.anthropic.com/v1/messages",
        "key_file": "config/anthropic.key"
    },

    "gemini": {
        "url": "https://generativelanguage.googleapis.com/v1beta/models",
        "key_file": "config/gemini.key"
    },

}

# Providers handled by dedicated branches in `client.send_request`.
NON_OPENAI_PROVIDERS = ("anthropic", "gemini")

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"

GEMINI_URL_TEMPLATE = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "{model}:generateContent"
)


# Shared system instruction used when a caller does not pass its own.
SYSTEM_MESSAGE = (
    "You are Synapse, a document and knowledge assistant.\n"
    "Answer precisely and clearly, without repetition.\n"
    "Base answers on the material you are given when it is provided.\n"
)


def load_key(path):
    """Load API key from environment override or key file.

    Resolution order:
        1. Environment variable inferred from file stem (for example
           `config/openai.key` -> `OPENAI_API_KEY`).
        2. Raw file contents at `path`.

    Args:
        path: Configured key file path or `None`.

    Returns:
        Key string or `None` when not available.

    Edge cases:
        - `None` path returns `None`.
        - Missing file returns `None`.
    """
    if not path:
        return None
    key_name = os.path.splitext(os.path.basename(path))[0].upper() + "_API_KEY"
    env_value = os.getenv(key_name)
    if env_value:
        return env_value
    if not os.path.exists(path):
        return None
    with open(path, "r") as f:
        return f.read().strip()

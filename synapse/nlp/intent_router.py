"""Intent router producing `IntentDecision` for core orchestration.

Intent classification logic:
- Parses explicit hard prefixes (`/<tool_name> ...`) first; these bypass the model.
- Otherwise asks the text-generation capability for a structured
  `{"tool", "argument"}` object and validates it against the closed `Tool` set.

Interaction with core:
- Implements the `IntentClassifier` port consumed by `synapse.core.engine`.
- The engine owns fallback and the file-override policy; this module only
  classifies or fails.

Determinism:
- Prefix parsing and validation are deterministic.
- Model-backed classification is not.

Failure handling:
- Malformed JSON, an unknown tool, `send_email`, or a generation failure raise
  `ClassificationError`.
"""

import logging

from synapse.core.ports import TextGenerator
from synapse.core.routing_types import IntentDecision, Tool
from synapse.exceptions import ClassificationError, GenerationError
from synapse.llm.service import load_structured
from synapse.prompting.prompt_builder import build_intent_prompt


logger = logging.getLogger(__name__)


INTENT_SCHEMA = {
    "type": "object",
    "properties": {
        "tool": {"type": "string", "enum": Tool.names()},
        "argument": {"type": "string"},
    },
    "required": ["tool", "argument"],
}


def parse_hard_prefix(message: str) -> IntentDecision | None:
    """Return a decision for `/<tool_name> rest` messages, else `None`.

    Edge cases:
    - Unknown `/word` prefixes are not treated as commands.
    - `/web_search` with no payload yields an empty argument.
    """
    stripped = (message or "").strip()
    if not stripped.startswith("/"):
        return None

    prefix, _, rest = stripped.partition(" ")
    try:
        tool = Tool(prefix[1:].lower())
    except ValueError:
        return None

    return IntentDecision(tool, rest.strip())


def parse_decision(data: object, message: str) -> IntentDecision:
    """Validate classifier output against the closed tool set."""
    if not isinstance(data, dict):
        raise ClassificationError("Classifier output is not a JSON object.")

    tool_name = str(data.get("tool") or "").strip().lower()
    try:
        tool = Tool(tool_name)
    except ValueError:
        raise ClassificationError(f"Classifier returned unknown tool: {tool_name!r}") from None

    argument = data.get("argument")
    if not isinstance(argument, str) or not argument.strip():
        argument = message

    return IntentDecision(tool, argument.strip())


class IntentRouter:
    """`IntentClassifier` port backed by a `TextGenerator`."""

    def __init__(self, generator: TextGenerator) -> None:
        self.generator = generator

    async def classify(self, text: str, media_type: str | None = None) -> IntentDecision:
        message = (text or "").strip()

        decision = parse_hard_prefix(message)
        if decision is not None:
            logger.info("Hard prefix routed to %s", decision.selected_tool.value)
            return decision

        prompt = build_intent_prompt(message, media_type)
        try:
            raw = await self.generator.generate_text(prompt, schema=INTENT_SCHEMA)
            data = load_structured(raw)
        except GenerationError as exc:
            raise ClassificationError(f"Intent detection failed: {exc}") from exc

        decision = parse_decision(data, message)
        logger.info(
            "intent tool=%s media_type=%s argument=%r",
            decision.selected_tool.value,
            media_type,
            decision.argument,
        )
        return decision

"""Routing decision data contracts for `synapse.core.engine`.

Architectural role:
    Defines the closed tool set, the decision returned by the intent router, and the
    deterministic file-override policy applied by the orchestration engine before
    dispatch.

Control-flow interaction:
    `engine.Engine.run` receives an `IntentDecision` from the classifier port, passes
    it through `apply_file_override`, then looks the resulting `Tool` up in its
    dispatch table.

Determinism:
    Everything in this module is pure and state-free.
"""

from dataclasses import dataclass
from enum import Enum


class Tool(str, Enum):
    """Tools the engine can dispatch to.

    `send_email` is deliberately absent: it is a direct, explicit action reached
    outside the engine (see `synapse.mail`).
    """

    EXTRACT_PDF_TEXT = "extract_pdf_text"
    EXTRACT_CSV_DATA = "extract_csv_data"
    RUN_OCR = "run_ocr"
    ANALYZE_DATA = "analyze_data"
    GENERATE_OFFER_LETTER = "generate_offer_letter"
    VERIFY_CLAIMS = "verify_claims"
    WEB_SEARCH = "web_search"
    GENERAL_QUERY = "general_query"

    @classmethod
    def names(cls) -> list[str]:
        return [tool.value for tool in cls]


PDF_MEDIA_TYPE = "application/pdf"
CSV_MEDIA_TYPE = "text/csv"

# Tools a file upload may override.
OVERRIDABLE_TOOLS = frozenset({Tool.GENERAL_QUERY, Tool.WEB_SEARCH})


@dataclass(frozen=True)
class IntentDecision:
    """Tool selection produced once per request.

    Attributes:
        selected_tool: Tool chosen by the classifier (or by fallback/override).
        argument: Main instruction forwarded to the selected tool.
    """

    selected_tool: Tool
    argument: str = ""


def tool_for_media_type(media_type: str | None) -> Tool:
    """Map a declared media type to the extraction tool that handles it."""
    if media_type == PDF_MEDIA_TYPE:
        return Tool.EXTRACT_PDF_TEXT
    if media_type == CSV_MEDIA_TYPE:
        return Tool.EXTRACT_CSV_DATA
    return Tool.RUN_OCR


def apply_file_override(
    decision: IntentDecision,
    has_file: bool,
    media_type: str | None,
    request_text: str,
) -> tuple[IntentDecision, bool]:
    """Force file processing when a document is attached to a generic request.

    Args:
        decision: Classifier (or fallback) decision.
        has_file: Whether the request carries an uploaded file.
        media_type: Normalized declared media type of the file.
        request_text: Original user text, used as the new argument.

    Returns:
        `(decision, overridden)`. The decision is unchanged unless a file is
        present and the selected tool is `general_query` or `web_search`.
    """
    if not has_file or decision.selected_tool not in OVERRIDABLE_TOOLS:
        return decision, False

    return IntentDecision(tool_for_media_type(media_type), request_text), True

"""Prompt assembly helpers used by the engine and pipelines.

This module is intentionally narrow: it only builds prompt strings from already
routed inputs. Tool selection, extraction, search, and model invocation happen
outside this module.

Design constraints:
    - Deterministic construction for identical inputs.
    - Fixed ordering of prompt components per tool.
    - No hidden side effects (no I/O, no global state mutation).

Prompt safety model:
    - Document text and web snippets are interpolated as delimited raw strings.
    - Instructions tell the model to treat them as data, never as directives.
"""

import json
from typing import Any


# =========================================================
# INTENT ROUTING
# =========================================================
# Tool catalogue shown to the classifier. Order matches `Tool`.

TOOL_DESCRIPTIONS = {
    "extract_pdf_text": "The user provides a PDF and wants its content extracted, summarized, or processed.",
    "extract_csv_data": "The user provides a CSV file, usually for analysis or charting.",
    "run_ocr": "The user provides an image file or an image-based (scanned) document.",
    "analyze_data": "The user wants calculations, trend analysis, or a chart on already extracted data.",
    "generate_offer_letter": "The user explicitly asks to create an offer letter.",
    "verify_claims": "The user asks to fact-check, verify, or compare document content with external data.",
    "web_search": "The user needs current, external, or general knowledge from the web.",
    "general_query": "Simple conversational questions.",
}


def build_intent_prompt(message: str, media_type: str | None) -> str:
    """Build the tool-routing prompt for the intent classifier.

    Component order:
        1) Role and task
        2) Tool catalogue
        3) File context line
        4) User message
    """
    catalogue = "\n".join(
        f"- {name}: {description}" for name, description in TOOL_DESCRIPTIONS.items()
    )
    if media_type:
        context = f"The user has provided a file of type: {media_type}."
    else:
        context = "No file has been provided by the user."

    return (
        "You are an intent detection and tool routing agent.\n"
        "Choose the single best next tool for the user's message and state the main "
        "instruction for that tool.\n\n"
        "Available tools:\n"
        f"{catalogue}\n\n"
        'Output a JSON object: {"tool": "<tool name>", "argument": "<instruction>"}\n\n'
        f"CONTEXT: {context}\n\n"
        f'USER MESSAGE: "{message}"'
    )


# =========================================================
# EXTRACTION POST-PROCESSING
# =========================================================

def build_structuring_prompt(raw_text: str) -> str:
    """Ask the model to regroup raw extracted text into coherent sections."""
    return (
        "You are an expert document parser. The text below was extracted from a "
        "document and may be fragmented.\n"
        "1. Keep table rows and their values together, even if they were split across "
        "lines or pages.\n"
        "2. Group related paragraphs into meaningful sections.\n"
        "3. Separate sections with the line '---SECTION-BREAK---'. Do not use JSON.\n"
        "4. Do not add information that is not in the text.\n\n"
        "DOCUMENT TEXT:\n---\n"
        f"{raw_text}\n"
        "---"
    )


SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful knowledge agent. Provide a concise professional summary."
)

GENERAL_SYSTEM_PROMPT = "You are a helpful and concise assistant."


def build_summary_prompt(document_text: str, request_text: str) -> str:
    """Summary prompt for freshly extracted document text."""
    instruction = request_text.strip() or "Summarize the document."
    return (
        f"User request:\n{instruction}\n\n"
        "=== DOCUMENT TEXT ===\n"
        f"{document_text}\n"
        "=== END DOCUMENT TEXT ===\n\n"
        "Summary:"
    )


# =========================================================
# TABULAR ANALYSIS
# =========================================================

def build_analysis_prompt(
    schema: list[dict[str, str]],
    sample_rows: list[dict[str, Any]],
    row_count: int,
    user_query: str,
) -> str:
    """Narrative-analysis prompt over a bounded data sample."""
    return (
        "You are an expert data analyst. Describe key insights, trends, means, "
        "growth percentages and outliers based on the data and the user request.\n"
        f"The dataset has {row_count} records; only a sample is shown.\n\n"
        f"DATA SCHEMA: {json.dumps(schema)}\n"
        f"DATA SAMPLE (first {len(sample_rows)} rows): {json.dumps(sample_rows, default=str)}\n"
        f'USER REQUEST: "{user_query}"'
    )


# =========================================================
# CLAIM VERIFICATION
# =========================================================

def build_claim_extraction_prompt(document_text: str, user_query: str) -> str:
    """Ask for 3-5 independently checkable factual claims as a JSON array."""
    return (
        "Analyze the document text and the user's request. Identify 3-5 specific, "
        "factual claims or data points that can each be checked independently with "
        "a web search. Output a JSON array of strings, one claim per entry.\n\n"
        f'USER REQUEST: "{user_query}"\n\n'
        "DOCUMENT TEXT:\n---\n"
        f"{document_text}\n"
        "---"
    )


def build_scoring_prompt(evidence: list[dict[str, str]]) -> str:
    """Ask for one confidence score and summary per claim/evidence pair."""
    return (
        "You are a claim verification engine. For each item, compare the 'claim' "
        "with the 'externalResult'.\n"
        "1. Determine a confidence score from 0 to 100 that the claim is supported.\n"
        "2. Write a concise comparison summary.\n"
        f"Return a JSON array with exactly {len(evidence)} objects in the same order "
        'as the input, each {"confidenceScore": <number>, "summary": "<text>"}.\n\n'
        f"DATA TO ANALYZE (JSON array): {json.dumps(evidence, ensure_ascii=False)}"
    )


# =========================================================
# OFFER LETTER
# =========================================================

def build_candidate_prompt(resume_text: str) -> str:
    return (
        "From the following resume text, extract the candidate's full name, primary "
        "email address, and, if stated, the desired job title and salary. Return a "
        "JSON object with keys name, email, jobTitle, salary.\n\n"
        f"RESUME TEXT:\n{resume_text}"
    )


def build_offer_letter_prompt(name: str, job_title: str, salary: str) -> str:
    return (
        "You are an expert HR documentation generator. Draft a professional, standard "
        "offer letter in clean, responsive HTML. Use the following details: "
        f"Name: {name}, Position: {job_title}, Salary: {salary}. "
        "Output ONLY the complete HTML code."
    )

"""Claim verification pipeline: extract -> gather evidence -> score.

Stages (strictly sequential, no partial results):
    1. Claim extraction: one structured generation call returning a JSON array of
       strings. Blank entries are dropped and at most `MAX_CLAIMS` are kept.
    2. Evidence gathering: one `search(claim, 1)` per claim, in claim order. An
       empty search result becomes `NO_EVIDENCE`.
    3. Scoring: one structured generation call over the whole batch returning one
       `{confidenceScore, summary}` object per claim, in the same order.

Failure handling:
    Each stage raises its own `ClaimVerificationError` subclass; `stage` names the
    failing step. Scores outside [0, 100] are clamped, a count mismatch fails.

Determinism:
    With deterministic ports the produced rows are identical across runs.
"""

import logging
from dataclasses import dataclass
from typing import Any

from synapse.core.events import Emitter
from synapse.core.ports import SearchProvider, TextGenerator
from synapse.exceptions import (
    ClaimExtractionError,
    ClaimScoringError,
    EvidenceGatheringError,
    GenerationError,
)
from synapse.llm.service import load_structured
from synapse.prompting.prompt_builder import (
    build_claim_extraction_prompt,
    build_scoring_prompt,
)


logger = logging.getLogger(__name__)

MAX_CLAIMS = 5
NO_EVIDENCE = "No relevant external data found."

CLAIMS_SCHEMA = {
    "type": "array",
    "items": {"type": "string"},
}

SCORING_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "confidenceScore": {"type": "number"},
            "summary": {"type": "string"},
        },
        "required": ["confidenceScore", "summary"],
    },
}

TABLE_CAPTION = "Claim Verification Results"
TABLE_HEADERS = ["Claim", "External Result", "Confidence (%)", "Summary"]


@dataclass(frozen=True)
class VerificationRow:
    claim: str
    external_result: str
    confidence_score: float
    summary: str
    source_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim": self.claim,
            "externalResult": self.external_result,
            "confidenceScore": self.confidence_score,
            "summary": self.summary,
            "sourceUrl": self.source_url,
        }


@dataclass(frozen=True)
class Evidence:
    claim: str
    external_result: str
    source_url: str

    def to_prompt_item(self) -> dict[str, str]:
        return {"claim": self.claim, "externalResult": self.external_result}


def build_table_payload(rows: list[VerificationRow]) -> dict[str, Any]:
    """Shape verification rows as a `table` event payload."""
    return {
        "caption": TABLE_CAPTION,
        "headers": TABLE_HEADERS,
        "rows": [
            [row.claim, row.external_result, row.confidence_score, row.summary]
            for row in rows
        ],
    }


# ============================================================
# STAGE 1: CLAIM EXTRACTION
# ============================================================

def parse_claims(data: Any) -> list[str]:
    if not isinstance(data, list):
        raise ClaimExtractionError("Claim extraction did not return a list of claims.")

    claims = [str(item).strip() for item in data if isinstance(item, (str, int, float))]
    claims = [claim for claim in claims if claim][:MAX_CLAIMS]

    if not claims:
        raise ClaimExtractionError("No verifiable claims could be extracted.")
    return claims


async def extract_claims(document_text: str, user_query: str, generator: TextGenerator) -> list[str]:
    try:
        raw = await generator.generate_text(
            build_claim_extraction_prompt(document_text, user_query),
            schema=CLAIMS_SCHEMA,
        )
        data = load_structured(raw)
    except GenerationError as exc:
        raise ClaimExtractionError(f"Claim extraction failed: {exc}") from exc

    return parse_claims(data)


# ============================================================
# STAGE 2: EVIDENCE
# ============================================================

async def gather_evidence(claims: list[str], search: SearchProvider, emit: Emitter) -> list[Evidence]:
    evidence: list[Evidence] = []

    for claim in claims:
        await emit.thought(f'\n- Searching for: "{claim}"')
        try:
            result = await search.search(claim, 1)
        except Exception as exc:
            raise EvidenceGatheringError(f"Evidence search failed for claim: {claim}") from exc

        if result.is_empty or not result.snippet.strip():
            evidence.append(Evidence(claim, NO_EVIDENCE, result.url))
        else:
            evidence.append(Evidence(claim, result.snippet, result.url))

    return evidence


# ============================================================
# STAGE 3: SCORING
# ============================================================

def clamp_score(value: Any) -> float:
    if isinstance(value, bool):
        raise ClaimScoringError("Confidence score is not a number.")
    try:
        score = float(value)
    except (TypeError, ValueError) as exc:
        raise ClaimScoringError("Confidence score is not a number.") from exc
    if score != score:
        raise ClaimScoringError("Confidence score is not a number.")
    return max(0.0, min(100.0, score))


def parse_scores(data: Any, evidence: list[Evidence]) -> list[VerificationRow]:
    if not isinstance(data, list):
        raise ClaimScoringError("Scoring did not return a list.")
    if len(data) != len(evidence):
        raise ClaimScoringError(
            f"Scoring returned {len(data)} results for {len(evidence)} claims."
        )

    rows: list[VerificationRow] = []
    for item, ev in zip(data, evidence):
        if not isinstance(item, dict):
            raise ClaimScoringError("Scoring result entry is not an object.")
        rows.append(
            VerificationRow(
                claim=ev.claim,
                external_result=ev.external_result,
                confidence_score=clamp_score(item.get("confidenceScore")),
                summary=str(item.get("summary") or "").strip(),
                source_url=ev.source_url,
            )
        )
    return rows


async def score_claims(evidence: list[Evidence], generator: TextGenerator) -> list[VerificationRow]:
    try:
        raw = await generator.generate_text(
            build_scoring_prompt([ev.to_prompt_item() for ev in evidence]),
            schema=SCORING_SCHEMA,
        )
        data = load_structured(raw)
    except GenerationError as exc:
        raise ClaimScoringError(f"Comparison and scoring failed: {exc}") from exc

    return parse_scores(data, evidence)


async def verify_claims(
    document_text: str,
    user_query: str,
    generator: TextGenerator,
    search: SearchProvider,
    emit: Emitter,
) -> list[VerificationRow]:
    """Run all three stages and return one row per extracted claim."""
    await emit.thought("\nAnalyzing document to extract verifiable claims...")
    claims = await extract_claims(document_text, user_query, generator)

    await emit.thought(
        f"\nExtracted {len(claims)} claims. Now searching the web for verification..."
    )
    evidence = await gather_evidence(claims, search, emit)

    await emit.thought(
        "\nComparing external data with original document claims and scoring confidence..."
    )
    rows = await score_claims(evidence, generator)

    logger.info("Verified %d claims", len(rows))
    return rows

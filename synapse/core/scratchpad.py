"""Session-scoped scratchpad shared between tools of one session.

Lifecycle:
    Created empty at session start, written by the pipeline that owns each field,
    read by later tools in the same session, dropped with the session.

Ownership:
    - `extracted_text`: `extract_pdf_text` / `run_ocr`.
    - `extracted_table`: `extract_csv_data`.
    - `draft_artifact`: `generate_offer_letter`.

Concurrency:
    Mutation is unguarded. Callers must not run two requests against the same
    instance at once; `synapse.core.session` enforces this for transports.
"""

from dataclasses import dataclass
from typing import Any

from synapse.exceptions import PreconditionError


@dataclass(frozen=True)
class SchemaField:
    """Inferred column type; `type` is either `"number"` or `"string"`."""

    field: str
    type: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "type": self.type}


@dataclass(frozen=True)
class ExtractedTable:
    """Parsed tabular data: ordered records plus the inferred schema."""

    rows: list[dict[str, Any]]
    schema: list[SchemaField]


@dataclass(frozen=True)
class EmailDraft:
    """Email-like payload drafted by a tool and confirmed by the user later."""

    to: str
    subject: str
    html: str

    def to_dict(self) -> dict[str, str]:
        return {"to": self.to, "subject": self.subject, "html": self.html}


@dataclass
class Scratchpad:
    extracted_text: str | None = None
    extracted_table: ExtractedTable | None = None
    draft_artifact: EmailDraft | None = None

    def store_text(self, text: str) -> None:
        self.extracted_text = text

    def store_table(self, table: ExtractedTable) -> None:
        self.extracted_table = table

    def store_draft(self, draft: EmailDraft) -> None:
        self.draft_artifact = draft

    def require_text(self, remedy: str) -> str:
        """Return extracted text or raise `PreconditionError(remedy)`."""
        if not self.extracted_text:
            raise PreconditionError(remedy)
        return self.extracted_text

    def require_table(self, remedy: str) -> ExtractedTable:
        """Return the extracted table or raise `PreconditionError(remedy)`."""
        if self.extracted_table is None:
            raise PreconditionError(remedy)
        return self.extracted_table

    def clear(self) -> None:
        self.extracted_text = None
        self.extracted_table = None
        self.draft_artifact = None

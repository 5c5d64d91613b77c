"""Offer-letter drafting from resume text.

Flow:
    1. Structured extraction of `{name, email, jobTitle, salary}` from the resume.
    2. Title and salary resolution: the user's request wins, then the resume,
       then the defaults (`DEFAULT_JOB_TITLE`, `DEFAULT_SALARY`).
    3. HTML generation; surrounding code fences are stripped.

A missing name or email is a `DraftingError`; no letter is generated for an
unknown recipient.
"""

import logging
import re
from dataclasses import dataclass

from synapse.core.ports import TextGenerator
from synapse.core.scratchpad import EmailDraft
from synapse.exceptions import DraftingError, GenerationError
from synapse.llm.service import load_structured, strip_code_fences
from synapse.prompting.prompt_builder import build_candidate_prompt, build_offer_letter_prompt


logger = logging.getLogger(__name__)

DEFAULT_JOB_TITLE = "Associate"
DEFAULT_SALARY = "$80,000"

_TITLE_PATTERN = re.compile(r"(Software Engineer|Data Scientist|Product Manager|Analyst)", re.IGNORECASE)
_SALARY_PATTERN = re.compile(r"\$\d{1,3}(?:,\d{3})*")

CANDIDATE_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "email": {"type": "string"},
        "jobTitle": {"type": "string"},
        "salary": {"type": "string"},
    },
    "required": ["name", "email"],
}


@dataclass(frozen=True)
class OfferLetter:
    name: str
    email: str
    job_title: str
    salary: str
    html: str

    @property
    def subject(self) -> str:
        return f"Job Offer: {self.job_title}"

    def to_draft(self) -> EmailDraft:
        return EmailDraft(to=self.email, subject=self.subject, html=self.html)


def _clean(value) -> str:
    return str(value).strip() if value is not None else ""


def resolve_job_title(query: str, extracted: str) -> str:
    match = _TITLE_PATTERN.search(query or "")
    if match:
        return match.group(0)
    return extracted or DEFAULT_JOB_TITLE


def resolve_salary(query: str, extracted: str) -> str:
    match = _SALARY_PATTERN.search(query or "")
    if match:
        return match.group(0)
    return extracted or DEFAULT_SALARY


async def draft_offer_letter(resume_text: str, query: str, generator: TextGenerator) -> OfferLetter:
    """Draft an offer letter for the candidate described by `resume_text`.

    Raises:
        DraftingError: Candidate details or the HTML could not be produced.
    """
    try:
        raw = await generator.generate_text(build_candidate_prompt(resume_text), schema=CANDIDATE_SCHEMA)
        details = load_structured(raw)
    except GenerationError as exc:
        raise DraftingError("Could not extract candidate name and email from the document.") from exc

    if not isinstance(details, dict):
        raise DraftingError("Could not extract candidate name and email from the document.")

    name = _clean(details.get("name"))
    email = _clean(details.get("email"))
    job_title = resolve_job_title(query, _clean(details.get("jobTitle")))
    salary = resolve_salary(query, _clean(details.get("salary")))

    if not name or not email:
        raise DraftingError("Could not find both candidate name and email to generate the letter.")

    try:
        html = await generator.generate_text(build_offer_letter_prompt(name, job_title, salary))
    except GenerationError as exc:
        raise DraftingError("Failed to generate the offer letter HTML.") from exc

    html = strip_code_fences(html)
    if not html:
        raise DraftingError("Failed to generate the offer letter HTML.")

    logger.info("Drafted offer letter: title=%s", job_title)
    return OfferLetter(name=name, email=email, job_title=job_title, salary=salary, html=html)

"""Error taxonomy shared by the engine, pipelines, and capability adapters.

Error classes map onto four handling categories:
    - Classification degradation (`ClassificationError`): recoverable, the engine
      substitutes a default tool.
    - Precondition violation (`PreconditionError` and subclasses): user-actionable,
      surfaced verbatim as one `error` event.
    - External capability failure (generation, parsing, optical, extraction,
      verification stages, drafting): pipeline-fatal.
    - Transport unavailability (`StreamClosedError`): emission stops silently.

Only the orchestration engine converts these into streamed `error` events.
"""


class SynapseError(Exception):
    """Base class for all errors raised inside the package."""


class ClassificationError(SynapseError):
    """Intent classifier returned malformed, unknown, or unusable output."""


class GenerationError(SynapseError):
    """Text-generation capability failed or returned unusable output."""


class ParseError(SynapseError):
    """Tabular input could not be parsed."""


class OpticalServiceError(SynapseError):
    """Optical extraction service rejected, failed, or misbehaved."""


class OpticalTimeoutError(OpticalServiceError):
    """Optical extraction did not finish within the polling bound."""

    def __init__(self, attempts: int):
        super().__init__(
            f"Optical extraction did not complete after {attempts} status checks."
        )
        self.attempts = attempts


class ExtractionError(SynapseError):
    """No usable text could be recovered from an uploaded document."""


class PreconditionError(SynapseError):
    """A tool was invoked without the state or input it needs.

    The message is shown to the user verbatim and should name the remedy.
    """


class ChartFieldsError(PreconditionError):
    """Tabular schema has no usable categorical or numerical field."""


class ClaimVerificationError(SynapseError):
    """Base class for claim-verification stage failures."""

    stage = "verification"


class ClaimExtractionError(ClaimVerificationError):
    stage = "claim_extraction"


class EvidenceGatheringError(ClaimVerificationError):
    stage = "evidence_gathering"


class ClaimScoringError(ClaimVerificationError):
    stage = "scoring"


class DraftingError(SynapseError):
    """Offer-letter drafting could not produce a complete draft."""


class EmailDeliveryError(SynapseError):
    """Outbound email could not be sent."""


class StreamClosedError(SynapseError):
    """The event sink was closed by the caller; no further events may be sent."""

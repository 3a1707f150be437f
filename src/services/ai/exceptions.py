"""Domain exceptions for the assistant reply extraction pipeline.

None of these are fatal to a conversation turn. `UnparsableJSONError` is
raised by the repair engine and caught by the pipeline; the other two are
recorded on the pipeline outcome as issues so callers and logs can branch on
a stable `error_code` without string matching.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.exceptions import DomainError


if TYPE_CHECKING:
    from services.ai.json_repair import ParseError


@dataclass(slots=True)
class AIExtractionError(DomainError):
    """Base class for AI extraction domain errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class UnparsableJSONError(AIExtractionError):
    """Every repair attempt was exhausted without producing valid JSON."""

    def __init__(
        self,
        message: str = "Structured payload could not be repaired into valid JSON",
        *,
        last_error: ParseError | None = None,
        candidate_text: str = "",
        attempts: int = 0,
    ) -> None:
        super().__init__(message=message, error_code="unparsable_json")
        self.last_error = last_error
        self.candidate_text = candidate_text
        self.attempts = attempts


class UnrecognizedShapeError(AIExtractionError):
    def __init__(
        self, message: str = "Structured payload has an unexpected shape"
    ) -> None:
        super().__init__(message=message, error_code="unrecognized_shape")


class EmptyPayloadError(AIExtractionError):
    def __init__(
        self, message: str = "Reply carried no structured payload"
    ) -> None:
        super().__init__(message=message, error_code="empty_payload")

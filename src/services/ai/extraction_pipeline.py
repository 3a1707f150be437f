"""Assistant reply extraction pipeline.

Runs the four stages for one assistant turn: sanitize the text for the
transcript, pick out structured calls (or JSON embedded in the text), repair
the JSON, and normalize it into a delta against the current document.

Nothing in here is fatal. A payload that cannot be repaired, has the wrong
shape, or is missing altogether produces an empty delta and an entry in
`ExtractionOutcome.issues`, so the conversation continues with the document
untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import JsonValue
from pydantic_ai.messages import ModelResponse

from core.config import Settings, get_settings
from core.error_handler import StructuredLogger, correlation_scope
from schemas.extraction import ExtractionDelta, OutcomeImageRequest, ProviderReply
from schemas.quiz import QuizSnapshot
from services.ai.exceptions import (
    AIExtractionError,
    EmptyPayloadError,
    UnparsableJSONError,
    UnrecognizedShapeError,
)
from services.ai.json_repair import MAX_REPAIR_ATTEMPTS, repair_json
from services.ai.normalizer import (
    IdFactory,
    new_id,
    normalize_payload,
    sanitize_optional_string,
)
from services.ai.patterns import LEAK_PATTERNS, NamedPattern, extend_table
from services.ai.sanitizer import sanitize_reply, strip_private_notes, strip_think_blocks
from services.ai.tool_calls import extract_tool_calls, find_embedded_json
from services.ai.tools import COVER_IMAGE_TOOL, OUTCOME_IMAGE_TOOL, UPDATE_QUIZ_TOOL


__all__ = [
    "ExtractionOutcome",
    "ReplyExtractionPipeline",
    "coerce_reply",
    "get_pipeline",
    "process_reply",
]

logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)

ReplyLike = ProviderReply | ModelResponse | Mapping[str, Any] | str


@dataclass(slots=True)
class ExtractionOutcome:
    """Everything one assistant turn produced for the UI and the store."""

    text: str
    delta: ExtractionDelta = field(default_factory=ExtractionDelta)
    image_requests: list[OutcomeImageRequest] = field(default_factory=list)
    issues: list[AIExtractionError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True when a structured payload was found and nothing was discarded."""
        return not self.issues

    @property
    def has_changes(self) -> bool:
        return not self.delta.is_empty() or bool(self.image_requests)

    @property
    def error_codes(self) -> list[str]:
        return [issue.error_code for issue in self.issues]


def coerce_reply(reply: ReplyLike) -> ProviderReply:
    """Accept the reply shapes the provider collaborators hand over."""
    if isinstance(reply, ProviderReply):
        return reply
    if isinstance(reply, ModelResponse):
        return ProviderReply.from_model_response(reply)
    if isinstance(reply, str):
        return ProviderReply(content=reply)
    if isinstance(reply, Mapping):
        return ProviderReply.from_chat_completion(reply)
    raise TypeError(f"Unsupported reply type: {type(reply).__name__}")


class ReplyExtractionPipeline:
    """Stateless pipeline; safe to share between concurrent requests."""

    def __init__(
        self,
        *,
        max_attempts: int = MAX_REPAIR_ATTEMPTS,
        leak_patterns: Iterable[NamedPattern] = LEAK_PATTERNS,
        id_factory: IdFactory = new_id,
    ) -> None:
        self.max_attempts = max_attempts
        self.leak_patterns = tuple(leak_patterns)
        self.id_factory = id_factory

    @classmethod
    def from_settings(
        cls, settings: Settings, id_factory: IdFactory = new_id
    ) -> ReplyExtractionPipeline:
        return cls(
            max_attempts=settings.JSON_REPAIR_MAX_ATTEMPTS,
            leak_patterns=extend_table(LEAK_PATTERNS, settings.extra_leak_patterns),
            id_factory=id_factory,
        )

    def sanitize(self, raw: str) -> str:
        return sanitize_reply(raw, self.leak_patterns)

    def _parse(
        self, arguments_text: str, source: str, issues: list[AIExtractionError]
    ) -> dict[str, Any] | None:
        try:
            payload: JsonValue = repair_json(arguments_text, self.max_attempts)
        except UnparsableJSONError as e:
            # Offsets and lengths only; the payload may contain user content
            structured_logger.warning(
                "Discarded unparsable structured payload",
                error_code=e.error_code,
                source=source,
                attempts=e.attempts,
                parse_offset=e.last_error.offset if e.last_error else None,
                parse_message=e.last_error.message if e.last_error else None,
                payload_length=len(arguments_text),
            )
            issues.append(e)
            return None

        if not isinstance(payload, dict):
            issue = UnrecognizedShapeError(
                f"Expected an object from {source}, got {type(payload).__name__}"
            )
            structured_logger.info(
                "Ignored structured payload", error_code=issue.error_code, source=source
            )
            issues.append(issue)
            return None
        return payload

    def _embedded_candidate(self, content: str) -> tuple[str, str] | None:
        """Find JSON in the user-visible part of ``content``.

        Returns the visible text and the JSON found in it. Reasoning and
        private notes are removed first; code fences are kept so a fenced
        block can still be found.
        """
        visible = strip_private_notes(strip_think_blocks(content.replace("\r\n", "\n")))
        embedded = find_embedded_json(visible)
        if not embedded:
            return None
        return visible, embedded

    def process(self, reply: ReplyLike, current: QuizSnapshot) -> ExtractionOutcome:
        """Run every stage for one reply against the current document."""
        provider_reply = coerce_reply(reply)
        extraction = extract_tool_calls(provider_reply, self.leak_patterns)
        outcome = ExtractionOutcome(text=extraction.text)
        outcome_ids: dict[str, str] = {}

        update_payloads = extraction.arguments_for(UPDATE_QUIZ_TOOL)
        embedded = None
        if not update_payloads:
            embedded = self._embedded_candidate(provider_reply.content or "")

        candidates = [(text, UPDATE_QUIZ_TOOL) for text in update_payloads]
        if embedded is not None:
            candidates.append((embedded[1], "embedded_json"))

        for arguments_text, source in candidates:
            payload = self._parse(arguments_text, source, outcome.issues)
            if payload is None:
                continue
            normalized = normalize_payload(payload, current, self.id_factory)
            outcome.delta = outcome.delta.merged_with(normalized.delta)
            outcome_ids.update(normalized.outcome_ids)
            if embedded is not None:
                # Only a payload that was applied is hidden from the transcript
                visible, json_text = embedded
                outcome.text = self.sanitize(visible.replace(json_text, "", 1))

        for arguments_text in extraction.arguments_for(COVER_IMAGE_TOOL):
            payload = self._parse(arguments_text, COVER_IMAGE_TOOL, outcome.issues)
            prompt = sanitize_optional_string(payload.get("prompt")) if payload else None
            if prompt and outcome.delta.cover_image_prompt is None:
                outcome.delta = outcome.delta.model_copy(
                    update={"cover_image_prompt": prompt}
                )

        for arguments_text in extraction.arguments_for(OUTCOME_IMAGE_TOOL):
            payload = self._parse(arguments_text, OUTCOME_IMAGE_TOOL, outcome.issues)
            if payload is None:
                continue
            outcome_id = sanitize_optional_string(
                payload.get("outcomeId", payload.get("outcome_id"))
            )
            prompt = sanitize_optional_string(payload.get("prompt"))
            if outcome_id and prompt:
                outcome.image_requests.append(
                    OutcomeImageRequest(
                        outcome_id=outcome_ids.get(outcome_id, outcome_id), prompt=prompt
                    )
                )

        if not extraction.calls and not candidates:
            outcome.issues.append(EmptyPayloadError())

        logger.debug(
            "Processed reply: %d call(s), changes=%s, issues=%s",
            len(extraction.calls),
            outcome.has_changes,
            outcome.error_codes,
        )
        return outcome


# Lazy-load the default pipeline so settings are read on first use
_pipeline: ReplyExtractionPipeline | None = None


def get_pipeline() -> ReplyExtractionPipeline:
    """Get or create the settings-configured pipeline."""
    global _pipeline
    if _pipeline is None:
        _pipeline = ReplyExtractionPipeline.from_settings(get_settings())
    return _pipeline


def process_reply(reply: ReplyLike, current: QuizSnapshot) -> ExtractionOutcome:
    """Extract the document changes and transcript text from one reply."""
    with correlation_scope():
        return get_pipeline().process(reply, current)

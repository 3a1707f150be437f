"""Map a parsed payload onto a delta-only `ExtractionDelta`.

The payload comes from a language model and is untrusted: any field may be
missing, mistyped, a placeholder echoed from the schema, or identical to what
the document already holds. Normalization keeps only real changes, reuses
identifiers by position so repeated extractions stay stable, and drops a
malformed field without failing the rest.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from pydantic import JsonValue

from schemas.extraction import (
    ExtractionDelta,
    LeadGenDelta,
    OptionDelta,
    OutcomeDelta,
    QuestionDelta,
)
from schemas.quiz import (
    LEAD_FIELDS,
    LeadField,
    LeadGenSettings,
    Outcome,
    Question,
    QuizSnapshot,
)
from services.ai.patterns import (
    FAKE_DOMAINS,
    NULLISH_TOKENS,
    OPTIONAL_MARKERS,
    PLACEHOLDER_KEYWORDS,
    REAL_VALUE_PREFIX,
    contains_any,
    matches_any,
    normalize_for_match,
)


logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]

# Values this short that contain a schema keyword are placeholders ("url", "texto")
PLACEHOLDER_MAX_LENGTH = 6

_SCALAR_FIELDS: tuple[tuple[str, str], ...] = (
    ("title", "title"),
    ("description", "description"),
    ("coverImageUrl", "cover_image_url"),
    ("ctaText", "cta_text"),
    ("ctaUrl", "cta_url"),
)


def new_id() -> str:
    return str(uuid4())


def sanitize_optional_string(value: object) -> str | None:
    """Return a trimmed real value, or None for anything that is not one."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None

    normalized = normalize_for_match(trimmed)
    if contains_any(FAKE_DOMAINS, normalized):
        return None
    if REAL_VALUE_PREFIX.match(trimmed):
        return trimmed
    if normalized in NULLISH_TOKENS:
        return None
    if matches_any(PLACEHOLDER_KEYWORDS, normalized) and (
        matches_any(OPTIONAL_MARKERS, normalized)
        or len(normalized) <= PLACEHOLDER_MAX_LENGTH
    ):
        return None
    return trimmed


def _get(source: Mapping[str, Any], *keys: str) -> Any:
    # Models mix camelCase and snake_case; the first key present wins
    for key in keys:
        if key in source:
            return source[key]
    return None


def _as_mapping(value: object) -> Mapping[str, Any] | None:
    return value if isinstance(value, Mapping) else None


def _as_list(value: object) -> list[Any] | None:
    return value if isinstance(value, list) else None


def _at(items: Sequence[Any], index: int) -> Any | None:
    return items[index] if index < len(items) else None


def _normalize_outcomes(
    raw: object,
    current: Sequence[Outcome],
    id_factory: IdFactory,
) -> tuple[list[OutcomeDelta], dict[str, str]]:
    """Return the outcomes and a map of model-written ids to assigned ids."""
    items = _as_list(raw)
    if items is None:
        return [], {}

    outcomes: list[OutcomeDelta] = []
    id_map: dict[str, str] = {}
    for index, item in enumerate(items):
        source = _as_mapping(item)
        if source is None:
            continue
        title = sanitize_optional_string(source.get("title"))
        if not title:
            continue

        existing = _at(current, index)
        outcome_id = existing.id if existing is not None else id_factory()
        written_id = source.get("id")
        if isinstance(written_id, str) and written_id.strip():
            id_map[written_id.strip()] = outcome_id

        outcomes.append(
            OutcomeDelta(
                id=outcome_id,
                title=title,
                description=_carry(
                    sanitize_optional_string(source.get("description")), existing, "description"
                ),
                image_url=_carry(
                    sanitize_optional_string(_get(source, "imageUrl", "image_url")),
                    existing,
                    "image_url",
                ),
                image_prompt=sanitize_optional_string(
                    _get(source, "imagePrompt", "image_prompt")
                ),
                cta_text=_carry(
                    sanitize_optional_string(_get(source, "ctaText", "cta_text")),
                    existing,
                    "cta_text",
                ),
                cta_url=_carry(
                    sanitize_optional_string(_get(source, "ctaUrl", "cta_url")),
                    existing,
                    "cta_url",
                ),
            )
        )
    return outcomes, id_map


def _carry(value: str | None, existing: object, attr: str) -> str | None:
    # A field the payload leaves out (or fills with a placeholder) keeps its value
    if value is not None or existing is None:
        return value
    return getattr(existing, attr)


def _resolve_target(value: object, id_map: Mapping[str, str]) -> str:
    if not isinstance(value, str):
        return ""
    target = value.strip()
    return id_map.get(target, target)


def _normalize_options(
    raw: object,
    current: Question | None,
    id_map: Mapping[str, str],
    id_factory: IdFactory,
) -> list[OptionDelta]:
    items = _as_list(raw) or []
    current_options = current.options if current is not None else []

    options: list[OptionDelta] = []
    for index, item in enumerate(items):
        source = _as_mapping(item)
        if source is None:
            continue
        text = sanitize_optional_string(source.get("text"))
        if not text:
            continue
        existing = _at(current_options, index)
        options.append(
            OptionDelta(
                id=existing.id if existing is not None else id_factory(),
                text=text,
                target_outcome_id=_resolve_target(
                    _get(source, "targetOutcomeId", "target_outcome_id"), id_map
                ),
            )
        )
    return options


def _normalize_questions(
    raw: object,
    current: Sequence[Question],
    id_map: Mapping[str, str],
    id_factory: IdFactory,
) -> list[QuestionDelta]:
    items = _as_list(raw)
    if items is None:
        return []

    questions: list[QuestionDelta] = []
    for index, item in enumerate(items):
        source = _as_mapping(item)
        if source is None:
            continue
        existing = _at(current, index)
        text = sanitize_optional_string(source.get("text"))
        if not text:
            continue
        questions.append(
            QuestionDelta(
                id=existing.id if existing is not None else id_factory(),
                text=text,
                image_url=_carry(
                    sanitize_optional_string(_get(source, "imageUrl", "image_url")),
                    existing,
                    "image_url",
                ),
                options=_normalize_options(
                    source.get("options"), existing, id_map, id_factory
                ),
            )
        )
    return questions


def _question_signature(question: Question | QuestionDelta) -> tuple[Any, ...]:
    return (
        question.id,
        question.text,
        question.image_url,
        tuple((o.id, o.text, o.target_outcome_id) for o in question.options),
    )


def _outcome_signature(outcome: Outcome | OutcomeDelta) -> tuple[Any, ...]:
    return (
        outcome.id,
        outcome.title,
        outcome.description,
        outcome.image_url,
        outcome.cta_text,
        outcome.cta_url,
    )


def _normalize_lead_fields(raw: object) -> list[LeadField]:
    fields: list[LeadField] = []
    for item in _as_list(raw) or []:
        if isinstance(item, Mapping):
            item = item.get("type")
        if not isinstance(item, str):
            continue
        name = item.strip().lower()
        for allowed in LEAD_FIELDS:
            if name == allowed and allowed not in fields:
                fields.append(allowed)
    return fields


def _normalize_lead_gen(raw: object) -> LeadGenDelta | None:
    source = _as_mapping(raw)
    if source is None:
        return None
    return LeadGenDelta(
        enabled=source.get("enabled") is True,
        title=sanitize_optional_string(source.get("title")),
        description=sanitize_optional_string(source.get("description")),
        fields=_normalize_lead_fields(source.get("fields")),
        cta_text=sanitize_optional_string(_get(source, "ctaText", "cta_text")),
    )


def _lead_gen_unchanged(delta: LeadGenDelta, current: LeadGenSettings | None) -> bool:
    if current is None:
        return False
    return (
        delta.enabled == current.enabled
        and delta.title == current.title
        and delta.description == current.description
        and delta.fields == list(current.fields)
        and delta.cta_text == current.cta_text
    )


@dataclass(frozen=True, slots=True)
class NormalizedPayload:
    """A delta plus the outcome ids the model wrote, mapped to assigned ids."""

    delta: ExtractionDelta = field(default_factory=ExtractionDelta)
    outcome_ids: dict[str, str] = field(default_factory=dict)

    def resolve_outcome_id(self, written: str) -> str:
        return self.outcome_ids.get(written, written)


def normalize_payload(
    payload: JsonValue,
    current: QuizSnapshot,
    id_factory: IdFactory = new_id,
) -> NormalizedPayload:
    """Turn a parsed payload into the changes it makes to ``current``.

    Args:
        payload: Parsed JSON from a tool call or an embedded reply block
        current: The document as the store holds it right now
        id_factory: Source of identifiers for items with no positional match

    Returns:
        A `NormalizedPayload` whose delta is empty when nothing changes
    """
    source = _as_mapping(payload)
    if source is None:
        return NormalizedPayload()

    updates: dict[str, Any] = {}

    for key, attr in _SCALAR_FIELDS:
        value = sanitize_optional_string(_get(source, key, attr))
        if value and value != getattr(current, attr):
            updates[attr] = value

    cover_prompt = sanitize_optional_string(
        _get(source, "coverImagePrompt", "cover_image_prompt")
    )
    if cover_prompt:
        updates["cover_image_prompt"] = cover_prompt

    outcomes, id_map = _normalize_outcomes(
        _get(source, "outcomes"), current.outcomes, id_factory
    )
    # Prompts are requests, not persisted state, so they keep the field alive
    has_image_prompt = any(o.image_prompt for o in outcomes)
    if outcomes and (
        has_image_prompt
        or [_outcome_signature(o) for o in outcomes]
        != [_outcome_signature(o) for o in current.outcomes]
    ):
        updates["outcomes"] = outcomes

    # Existing outcome ids are valid targets even when outcomes are unchanged
    known_targets = {o.id: o.id for o in current.outcomes} | id_map
    questions = _normalize_questions(
        _get(source, "questions"), current.questions, known_targets, id_factory
    )
    if questions and [_question_signature(q) for q in questions] != [
        _question_signature(q) for q in current.questions
    ]:
        updates["questions"] = questions

    lead_gen = _normalize_lead_gen(_get(source, "leadGen", "lead_gen"))
    if lead_gen is not None and not _lead_gen_unchanged(lead_gen, current.lead_gen):
        updates["lead_gen"] = lead_gen

    logger.debug("Normalized extraction with fields: %s", sorted(updates))
    return NormalizedPayload(delta=ExtractionDelta(**updates), outcome_ids=id_map)


def normalize_extraction(
    payload: JsonValue,
    current: QuizSnapshot,
    id_factory: IdFactory = new_id,
) -> ExtractionDelta:
    """Like `normalize_payload`, returning only the delta."""
    return normalize_payload(payload, current, id_factory).delta

"""Quiz document schemas shared with the quiz store.

These models mirror the persisted quiz document. The extraction core only
ever reads them: a `QuizSnapshot` is handed in on every call so identifiers
can be reused by position and unchanged fields can be left out of the delta.
All models serialize with camelCase aliases to match the store's JSON.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


LeadField = Literal["name", "email", "phone"]

LEAD_FIELDS: tuple[LeadField, ...] = ("name", "email", "phone")


class QuizModel(BaseModel):
    """Base model with the store's camelCase wire format."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class AnswerOption(QuizModel):
    id: str
    text: str = ""
    icon: str | None = None
    target_outcome_id: str = ""


class Question(QuizModel):
    id: str
    text: str = ""
    image_url: str | None = None
    options: list[AnswerOption] = Field(default_factory=list)
    allow_multiple: bool | None = None


class Outcome(QuizModel):
    id: str
    title: str = ""
    description: str | None = None
    image_url: str | None = None
    cta_text: str | None = None
    cta_url: str | None = None


class LeadGenSettings(QuizModel):
    enabled: bool = False
    title: str | None = None
    description: str | None = None
    fields: list[LeadField] = Field(default_factory=list)
    cta_text: str | None = None


class QuizSnapshot(QuizModel):
    """Read-only view of the in-progress quiz document."""

    title: str | None = None
    description: str | None = None
    cover_image_url: str | None = None
    cta_text: str | None = None
    cta_url: str | None = None
    questions: list[Question] = Field(default_factory=list)
    outcomes: list[Outcome] = Field(default_factory=list)
    lead_gen: LeadGenSettings | None = None


class ChatMessage(QuizModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: int | None = None

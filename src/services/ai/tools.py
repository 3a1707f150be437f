"""Structured calls the quiz assistant is allowed to make.

The registry is versioned: adding a tool is backwards compatible, while
renaming one breaks replies produced against the older schema. Argument
models double as the JSON schema sent to the provider.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_ai.tools import ToolDefinition

from schemas.quiz import LeadField


TOOL_SCHEMA_VERSION = "2"

UPDATE_QUIZ_TOOL = "update_quiz"
COVER_IMAGE_TOOL = "generate_cover_image"
OUTCOME_IMAGE_TOOL = "generate_outcome_image"


class _ToolArgs(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OptionArgs(_ToolArgs):
    text: str
    target_outcome_id: str = Field(description="Id of the outcome this answer leads to")


class QuestionArgs(_ToolArgs):
    text: str
    image_url: str | None = None
    options: list[OptionArgs]


class OutcomeArgs(_ToolArgs):
    id: str | None = Field(
        default=None, description="Existing outcome id, or a short label for new ones"
    )
    title: str
    description: str | None = None
    image_url: str | None = None
    image_prompt: str | None = Field(
        default=None, description="Short visual description to generate an image"
    )
    cta_text: str | None = None
    cta_url: str | None = None


class LeadGenArgs(_ToolArgs):
    enabled: bool
    title: str | None = None
    description: str | None = None
    fields: list[LeadField] = Field(default_factory=list)
    cta_text: str | None = None


class UpdateQuizArgs(_ToolArgs):
    """Only the fields that changed in this turn."""

    title: str | None = None
    description: str | None = None
    cover_image_url: str | None = None
    cover_image_prompt: str | None = None
    cta_text: str | None = None
    cta_url: str | None = None
    questions: list[QuestionArgs] | None = None
    outcomes: list[OutcomeArgs] | None = None
    lead_gen: LeadGenArgs | None = None


class CoverImageArgs(_ToolArgs):
    prompt: str = Field(description="Short visual description of the cover image")


class OutcomeImageArgs(_ToolArgs):
    outcome_id: str
    prompt: str = Field(description="Short visual description of the outcome image")


TOOL_ARGUMENT_MODELS: dict[str, type[BaseModel]] = {
    UPDATE_QUIZ_TOOL: UpdateQuizArgs,
    COVER_IMAGE_TOOL: CoverImageArgs,
    OUTCOME_IMAGE_TOOL: OutcomeImageArgs,
}

TOOL_DESCRIPTIONS: dict[str, str] = {
    UPDATE_QUIZ_TOOL: (
        "Apply changes to the quiz being built. Send only the fields that "
        "changed; omitted fields are kept as they are."
    ),
    COVER_IMAGE_TOOL: "Request a cover image for the quiz from a short prompt.",
    OUTCOME_IMAGE_TOOL: "Request an image for one outcome from a short prompt.",
}

KNOWN_TOOL_NAMES: frozenset[str] = frozenset(TOOL_ARGUMENT_MODELS)


def is_known_tool(name: str) -> bool:
    return name in KNOWN_TOOL_NAMES


def build_tool_definitions() -> list[ToolDefinition]:
    """Tool definitions for a pydantic-ai model request."""
    return [
        ToolDefinition(
            name=name,
            description=TOOL_DESCRIPTIONS[name],
            parameters_json_schema=model.model_json_schema(by_alias=True),
        )
        for name, model in TOOL_ARGUMENT_MODELS.items()
    ]


def build_openai_tools() -> list[dict[str, Any]]:
    """The same registry in the OpenAI-compatible ``tools`` request format."""
    return [
        {
            "type": "function",
            "function": {
                "name": definition.name,
                "description": definition.description,
                "parameters": definition.parameters_json_schema,
            },
        }
        for definition in build_tool_definitions()
    ]

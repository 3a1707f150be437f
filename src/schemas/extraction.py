"""Schemas for the assistant reply extraction pipeline.

`ExtractionDelta` is the sparse update handed to the quiz store: a field left
as ``None`` means "leave unchanged", never "clear". The provider-facing models
(`ToolInvocation`, `ProviderReply`) describe what the language model returned
for one turn, independent of the transport that fetched it.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_ai.messages import ModelResponse, TextPart, ToolCallPart

from schemas.quiz import LeadField


class DeltaModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class OptionDelta(DeltaModel):
    id: str
    text: str
    target_outcome_id: str = ""


class QuestionDelta(DeltaModel):
    id: str
    text: str
    image_url: str | None = None
    options: list[OptionDelta] = Field(default_factory=list)


class OutcomeDelta(DeltaModel):
    id: str
    title: str
    description: str | None = None
    image_url: str | None = None
    image_prompt: str | None = Field(
        default=None,
        description="Request to generate imagery; distinct from a direct URL",
    )
    cta_text: str | None = None
    cta_url: str | None = None


class LeadGenDelta(DeltaModel):
    enabled: bool = False
    title: str | None = None
    description: str | None = None
    fields: list[LeadField] = Field(default_factory=list)
    cta_text: str | None = None


class ExtractionDelta(DeltaModel):
    """Document-shaped, delta-only extraction result."""

    title: str | None = None
    description: str | None = None
    cover_image_url: str | None = None
    cover_image_prompt: str | None = None
    cta_text: str | None = None
    cta_url: str | None = None
    questions: list[QuestionDelta] | None = None
    outcomes: list[OutcomeDelta] | None = None
    lead_gen: LeadGenDelta | None = None

    def is_empty(self) -> bool:
        """True when there is nothing to apply to the document."""
        return all(getattr(self, name) is None for name in type(self).model_fields)

    def to_patch(self) -> dict[str, Any]:
        """Wire-format patch containing only the fields that changed."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def merged_with(self, other: ExtractionDelta) -> ExtractionDelta:
        """Overlay ``other`` on top of this delta (present fields win)."""
        updates = {
            name: getattr(other, name)
            for name in type(other).model_fields
            if getattr(other, name) is not None
        }
        return self.model_copy(update=updates)


class OutcomeImageRequest(DeltaModel):
    outcome_id: str
    prompt: str


class ToolInvocation(DeltaModel):
    """One named structured call with its raw argument text."""

    name: str
    arguments_text: str | None = None


class ProviderReply(DeltaModel):
    """Provider response for one assistant turn."""

    content: str | None = None
    tool_calls: list[ToolInvocation] = Field(default_factory=list)

    @classmethod
    def from_model_response(cls, response: ModelResponse) -> ProviderReply:
        """Build from a pydantic-ai response; thinking parts are never kept."""
        texts: list[str] = []
        calls: list[ToolInvocation] = []
        for part in response.parts:
            if isinstance(part, TextPart):
                texts.append(part.content)
            elif isinstance(part, ToolCallPart):
                calls.append(
                    ToolInvocation(
                        name=part.tool_name,
                        arguments_text=_arguments_to_text(part.args),
                    )
                )
        return cls(content="\n".join(texts) if texts else None, tool_calls=calls)

    @classmethod
    def from_chat_completion(cls, payload: Mapping[str, Any]) -> ProviderReply:
        """Build from an OpenAI-compatible chat completion body.

        Only ``choices[0].message`` is read; anything that does not have the
        expected shape is treated as absent.
        """
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return cls()
        first = choices[0]
        message = first.get("message") if isinstance(first, Mapping) else None
        if not isinstance(message, Mapping):
            return cls()

        content = message.get("content")
        calls: list[ToolInvocation] = []
        raw_calls = message.get("tool_calls")
        if isinstance(raw_calls, list):
            for raw in raw_calls:
                function = raw.get("function") if isinstance(raw, Mapping) else None
                if not isinstance(function, Mapping):
                    continue
                name = function.get("name")
                if not isinstance(name, str) or not name:
                    continue
                calls.append(
                    ToolInvocation(
                        name=name,
                        arguments_text=_arguments_to_text(function.get("arguments")),
                    )
                )
        return cls(
            content=content if isinstance(content, str) else None,
            tool_calls=calls,
        )


def _arguments_to_text(args: object) -> str | None:
    # Dict arguments were already decoded by the SDK; re-encode so they take
    # the direct parse path like every other call.
    if isinstance(args, str):
        return args
    if isinstance(args, dict):
        return json.dumps(args, ensure_ascii=False)
    return None

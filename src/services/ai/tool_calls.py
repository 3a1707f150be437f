"""Structured-call extraction from provider replies."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from schemas.extraction import ProviderReply, ToolInvocation
from services.ai.patterns import LEAK_PATTERNS, NamedPattern
from services.ai.sanitizer import sanitize_reply
from services.ai.tools import is_known_tool


logger = logging.getLogger(__name__)

JSON_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)(?:```|$)", re.IGNORECASE)


@dataclass(slots=True)
class ToolCallExtraction:
    """Known tool calls from one reply plus the text safe to show the user."""

    calls: list[ToolInvocation] = field(default_factory=list)
    text: str = ""

    def arguments_for(self, name: str) -> list[str]:
        return [call.arguments_text or "" for call in self.calls if call.name == name]


def unwrap_arguments(arguments_text: str) -> str:
    """Strip a markdown fence some models put around tool arguments."""
    stripped = arguments_text.strip()
    if stripped.startswith("```"):
        match = JSON_FENCE_RE.search(stripped)
        if match:
            return match.group(1).strip()
    return stripped


def extract_tool_calls(
    reply: ProviderReply, leak_patterns: Iterable[NamedPattern] = LEAK_PATTERNS
) -> ToolCallExtraction:
    """Keep calls to known tools that carry arguments and sanitize the text.

    Unknown tool names are ignored so newer schemas do not break older
    clients; calls with empty arguments are skipped.
    """
    calls: list[ToolInvocation] = []
    for call in reply.tool_calls:
        if not is_known_tool(call.name):
            logger.debug("Ignoring unknown tool call '%s'", call.name)
            continue
        if not call.arguments_text or not call.arguments_text.strip():
            logger.debug("Skipping tool call '%s' without arguments", call.name)
            continue
        calls.append(
            ToolInvocation(
                name=call.name, arguments_text=unwrap_arguments(call.arguments_text)
            )
        )

    return ToolCallExtraction(
        calls=calls, text=sanitize_reply(reply.content or "", leak_patterns)
    )


def find_embedded_json(raw: str) -> str | None:
    """Locate JSON-like text inside a free-form reply.

    A fenced ```json block wins. Otherwise the text from the first ``{`` up
    to its balancing ``}`` is returned, or up to the end of the reply when
    the object was truncated.
    """
    if not raw:
        return None

    for match in JSON_FENCE_RE.finditer(raw):
        body = match.group(1).strip()
        if body.startswith(("{", "[")):
            return body

    start = raw.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(raw)):
        ch = raw[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return raw[start : i + 1]
    return raw[start:].rstrip()

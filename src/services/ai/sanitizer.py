"""Leak and repetition filtering for assistant replies shown to the user."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from services.ai.patterns import (
    CONFIRMATION_PATTERNS,
    LEAK_PATTERNS,
    NamedPattern,
    matches_any,
    normalize_for_match,
)


logger = logging.getLogger(__name__)

THINK_BLOCK_RE = re.compile(r"<think\b[^>]*>.*?</think\s*>", re.IGNORECASE | re.DOTALL)
THINK_OPEN_RE = re.compile(r"<think\b[^>]*>", re.IGNORECASE)
THINK_CLOSE_RE = re.compile(r"</think\s*>", re.IGNORECASE)

PRIVATE_NOTE_RE = re.compile(r"\[INTERNAL\].*?\[/INTERNAL\]", re.IGNORECASE | re.DOTALL)
PRIVATE_NOTE_OPEN_RE = re.compile(r"\[INTERNAL\]", re.IGNORECASE)

CODE_FENCE_RE = re.compile(r"```.*?```", re.DOTALL)


def strip_think_blocks(text: str) -> str:
    text = THINK_BLOCK_RE.sub("", text)
    # Truncated reply: the reasoning never closed
    opener = THINK_OPEN_RE.search(text)
    if opener:
        text = text[: opener.start()]
    # Some models omit the opening tag and only emit the closing one
    closers = list(THINK_CLOSE_RE.finditer(text))
    if closers:
        text = text[closers[-1].end() :]
    return text


def strip_private_notes(text: str) -> str:
    text = PRIVATE_NOTE_RE.sub("", text)
    opener = PRIVATE_NOTE_OPEN_RE.search(text)
    if opener:
        text = text[: opener.start()]
    return text


def strip_code_fences(text: str) -> str:
    text = CODE_FENCE_RE.sub("", text)
    # An unterminated fence swallows the rest of the reply
    dangling = text.find("```")
    if dangling != -1:
        text = text[:dangling]
    return text


def drop_leak_lines(text: str, patterns: Iterable[NamedPattern] = LEAK_PATTERNS) -> str:
    patterns = tuple(patterns)
    kept: list[str] = []
    for line in text.split("\n"):
        hit = matches_any(patterns, normalize_for_match(line))
        if hit is not None:
            logger.debug("Dropped leak line matching pattern '%s'", hit.name)
            continue
        kept.append(line)
    return "\n".join(kept)


def suppress_repetition(text: str) -> str:
    """Drop repeated confirmations and third consecutive identical lines.

    Blank lines are kept verbatim and do not take part in the comparison.
    """
    output: list[str] = []
    recent: list[str] = []  # last two non-empty output lines
    confirmation_seen = False

    for line in text.split("\n"):
        if not line.strip():
            output.append(line)
            continue

        if matches_any(CONFIRMATION_PATTERNS, normalize_for_match(line)):
            if confirmation_seen:
                continue
            confirmation_seen = True

        if len(recent) == 2 and recent[0] == line and recent[1] == line:
            continue

        output.append(line)
        recent = [*recent[-1:], line]

    return "\n".join(output)


def sanitize_reply(raw: str, leak_patterns: Iterable[NamedPattern] = LEAK_PATTERNS) -> str:
    """Return ``raw`` with model-internal artifacts and repeated lines removed.

    Never raises; text with nothing to remove only loses surrounding
    whitespace.
    """
    if not raw:
        return ""

    text = raw.replace("\r\n", "\n")
    text = strip_think_blocks(text)
    text = strip_private_notes(text)
    text = strip_code_fences(text)
    text = drop_leak_lines(text, leak_patterns)
    text = suppress_repetition(text)

    # Collapse the gaps left by removed blocks to a single blank line
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()

"""Deterministic repair ladder for malformed JSON emitted by language models.

Model output is frequently truncated mid-object or missing a comma between
siblings. `repair_json` runs an ordered, bounded sequence of text repairs,
re-parsing after each one:

1. direct parse (well-formed tool arguments never pay repair cost)
2. structural normalization: escape raw newlines inside strings, close an
   unterminated string, append the missing closers
3. syntactic cleanup: trailing commas, over-closed objects/arrays, missing
   commas between sibling objects/arrays
4. comma insertion at the parser's reported error offset
5. cleanup again
6. longest valid prefix, scanning backwards from the end

Every repair only appends or rewrites structural characters outside string
literals, and the number of parse attempts after the direct parse is capped,
so the ladder always terminates with the same answer for the same input.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import JsonValue

from services.ai.exceptions import UnparsableJSONError


logger = logging.getLogger(__name__)

MAX_REPAIR_ATTEMPTS = 5

# Cut points examined by the prefix strategy, counted from the end of the text
MAX_PREFIX_CUTS = 256

_CLOSER_FOR = {"{": "}", "[": "]"}
_STRING_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_DUPLICATE_CLOSER_RE = re.compile(r"([}\]])\s*,?\s*\1")
_MISSING_SIBLING_COMMA_RE = re.compile(r"([}\]])(\s*)([{\[])")


@dataclass(frozen=True, slots=True)
class ParseError:
    """Parser failure with the character offset it was detected at."""

    offset: int | None
    message: str

    @classmethod
    def from_decode_error(cls, exc: json.JSONDecodeError) -> ParseError:
        return cls(offset=exc.pos, message=exc.msg)


@dataclass(frozen=True, slots=True)
class ParseResult:
    value: JsonValue = None
    error: ParseError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class RepairCandidate:
    """Text under repair plus the bookkeeping that drives the ladder."""

    text: str
    attempts: int = 0
    last_error: ParseError | None = None

    def attempt(self, text: str) -> tuple[RepairCandidate, ParseResult]:
        result = try_parse(text)
        return (
            RepairCandidate(text=text, attempts=self.attempts + 1, last_error=result.error),
            result,
        )


def try_parse(text: str) -> ParseResult:
    """Parse ``text`` as JSON, reporting failures as a structured `ParseError`."""
    try:
        return ParseResult(value=json.loads(text))
    except json.JSONDecodeError as e:
        return ParseResult(error=ParseError.from_decode_error(e))
    except RecursionError:
        return ParseResult(error=ParseError(offset=None, message="Nesting too deep"))


def _split_segments(text: str) -> list[tuple[bool, str]]:
    """Split text into runs of ``(is_string_literal, chunk)``.

    A string literal runs from an unescaped quote to the next unescaped quote,
    or to the end of the text when it is unterminated.
    """
    segments: list[tuple[bool, str]] = []
    buf: list[str] = []
    in_string = False
    escaped = False

    for ch in text:
        if in_string:
            buf.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                segments.append((True, "".join(buf)))
                buf = []
                in_string = False
        elif ch == '"':
            if buf:
                segments.append((False, "".join(buf)))
            buf = [ch]
            in_string = True
        else:
            buf.append(ch)

    if buf:
        segments.append((in_string, "".join(buf)))
    return segments


def _sub_outside_strings(pattern: re.Pattern[str], repl: str, text: str) -> str:
    return "".join(
        chunk if is_string else pattern.sub(repl, chunk)
        for is_string, chunk in _split_segments(text)
    )


def close_structures(text: str) -> str:
    """Escape control characters in strings and append missing closers.

    Unmatched closers are left in place; this pass never removes characters.
    """
    out: list[str] = []
    stack: list[str] = []
    in_string = False
    escaped = False

    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif ch in _STRING_ESCAPES:
                out.append(_STRING_ESCAPES[ch])
                continue
            out.append(ch)
            continue

        if ch == '"':
            in_string = True
        elif ch in _CLOSER_FOR:
            stack.append(_CLOSER_FOR[ch])
        elif ch in ("}", "]") and ch in stack:
            # A closer may implicitly close inner structures left open
            while stack.pop() != ch:
                pass
        out.append(ch)

    if in_string:
        if escaped:
            out.append("\\")
        out.append('"')
    out.extend(reversed(stack))
    return "".join(out)


def _closer_excess(text: str) -> dict[str, int]:
    excess = {"}": 0, "]": 0}
    for is_string, chunk in _split_segments(text):
        if is_string:
            continue
        excess["}"] += chunk.count("}") - chunk.count("{")
        excess["]"] += chunk.count("]") - chunk.count("[")
    return excess


def collapse_excess_closers(text: str, passes: int = 3) -> str:
    """Collapse ``}}``, ``]]``, ``},}`` and ``],]`` while a kind is over-closed.

    Each pass rewrites the right-most duplicate of a closer kind that
    outnumbers its openers, so balanced nesting is never touched.
    """
    for _ in range(passes):
        excess = _closer_excess(text)
        target: tuple[int, int, str] | None = None
        offset = 0
        for is_string, chunk in _split_segments(text):
            if not is_string:
                for match in _DUPLICATE_CLOSER_RE.finditer(chunk):
                    closer = match.group(1)
                    if excess[closer] > 0:
                        target = (offset + match.start(), offset + match.end(), closer)
            offset += len(chunk)

        if target is None:
            break
        start, end, closer = target
        text = text[:start] + closer + text[end:]
    return text


def clean_syntax(text: str) -> str:
    """Apply the regex cleanups to everything outside string literals."""
    # Twice: removing one comma can expose another (`[1,,]`)
    for _ in range(2):
        text = _sub_outside_strings(_TRAILING_COMMA_RE, r"\1", text)
    text = collapse_excess_closers(text)
    return _sub_outside_strings(_MISSING_SIBLING_COMMA_RE, r"\1,\2\3", text)


def insert_comma_at_error(text: str, error: ParseError | None) -> str | None:
    """Insert a comma before the reported error offset when a value ends there."""
    if error is None or error.offset is None:
        return None

    pos = min(error.offset, len(text))
    if pos < len(text) and text[pos] in "}]":
        return None

    i = pos - 1
    while i >= 0 and text[i].isspace():
        i -= 1
    if i < 0 or text[i] in "{[,:":
        return None
    return text[: i + 1] + "," + text[i + 1 :]


def extract_valid_prefix(text: str, max_cuts: int = MAX_PREFIX_CUTS) -> str | None:
    """Return the repaired text of the longest prefix that parses as a container.

    Cut points are every ``}``, ``]`` and ``"`` (kept) and every ``,``
    (dropped), examined from the end of the text.
    """
    cuts = 0
    for i in range(len(text) - 1, -1, -1):
        ch = text[i]
        if ch in '}]"':
            prefix = text[: i + 1]
        elif ch == ",":
            prefix = text[:i]
        else:
            continue

        cuts += 1
        if cuts > max_cuts:
            break

        repaired = clean_syntax(close_structures(prefix))
        result = try_parse(repaired)
        if result.ok and isinstance(result.value, dict | list):
            return repaired
    return None


class _RepairLadder:
    """Runs strategies against a candidate until one parses or attempts run out."""

    def __init__(self, candidate: RepairCandidate, max_attempts: int) -> None:
        self.candidate = candidate
        self.max_attempts = max_attempts
        self.result: ParseResult | None = None

    def step(self, strategy: Callable[[RepairCandidate], str | None]) -> bool:
        """Run one strategy; a strategy that changes nothing costs no attempt."""
        if self.candidate.attempts >= self.max_attempts:
            return False
        repaired = strategy(self.candidate)
        if repaired is None or repaired == self.candidate.text:
            return False
        self.candidate, result = self.candidate.attempt(repaired)
        if result.ok:
            self.result = result
            return True
        return False

    def insert_commas(self, reserve: int) -> bool:
        """Insert commas at successive error offsets while the error moves forward.

        ``reserve`` attempts are left for the strategies that follow.
        """
        while self.candidate.attempts < self.max_attempts - reserve:
            before = self.candidate
            if self.step(lambda c: insert_comma_at_error(c.text, c.last_error)):
                return True
            if self.candidate is before:
                return False
            if not _error_advanced(before.last_error, self.candidate.last_error):
                return False
        return False


def _error_advanced(previous: ParseError | None, current: ParseError | None) -> bool:
    if previous is None or current is None:
        return False
    if previous.offset is None or current.offset is None:
        return False
    return current.offset > previous.offset


def repair_json(text: str, max_attempts: int = MAX_REPAIR_ATTEMPTS) -> JsonValue:
    """Parse ``text`` as JSON, repairing common model output defects.

    Args:
        text: JSON-like text, possibly truncated or malformed
        max_attempts: Cap on parse attempts after the direct parse

    Returns:
        The parsed JSON value

    Raises:
        UnparsableJSONError: If no strategy produced valid JSON
    """
    direct = try_parse(text)
    if direct.ok:
        return direct.value

    ladder = _RepairLadder(
        RepairCandidate(text=text, last_error=direct.error),
        max_attempts=min(max_attempts, MAX_REPAIR_ATTEMPTS),
    )
    repaired = (
        ladder.step(lambda c: close_structures(c.text))
        or ladder.step(lambda c: clean_syntax(c.text))
        or ladder.insert_commas(reserve=2)
        or ladder.step(lambda c: clean_syntax(c.text))
        or ladder.step(lambda c: extract_valid_prefix(c.text))
    )

    if repaired and ladder.result is not None:
        logger.debug(
            "Repaired JSON payload after %d attempt(s) (%d chars)",
            ladder.candidate.attempts,
            len(text),
        )
        return ladder.result.value

    last_error = ladder.candidate.last_error
    raise UnparsableJSONError(
        last_error=last_error,
        candidate_text=ladder.candidate.text,
        attempts=ladder.candidate.attempts,
    )

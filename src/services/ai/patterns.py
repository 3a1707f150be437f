"""Named pattern tables used to filter assistant output.

Every rule that decides whether text is a leak, a placeholder, or a nullish
token lives in one of the tables below. The matching logic is a single
generic helper (`matches_any`), so extending a table never touches control
flow. All tables are matched against text passed through `normalize_for_match`
(diacritics stripped, lower-cased), so entries are written in that form.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class NamedPattern:
    name: str
    regex: re.Pattern[str]

    @classmethod
    def compile(cls, name: str, pattern: str) -> NamedPattern:
        return cls(name=name, regex=re.compile(pattern, re.IGNORECASE))


def _table(*entries: tuple[str, str]) -> tuple[NamedPattern, ...]:
    return tuple(NamedPattern.compile(name, pattern) for name, pattern in entries)


# Lines matching any of these never reach the transcript
LEAK_PATTERNS: tuple[NamedPattern, ...] = _table(
    ("tool_name", r"\b(update_quiz|generate_cover_image|generate_outcome_image)\b"),
    ("tool_call", r"\b(tool|function)[ _-]?calls?\b"),
    ("tool_call_pt", r"\bchamad[ao]s? (de|da|a) (ferramenta|funcao)\b"),
    ("call_the_tool", r"\b(vou|irei|preciso) (chamar|usar|acionar) a (ferramenta|funcao)\b"),
    ("internal_context", r"\b(internal|hidden) (context|notes?|instructions?)\b"),
    ("internal_context_pt", r"\bcontexto (interno|oculto)\b"),
    ("system_prompt", r"\bsystem ?prompt\b|\bprompt do sistema\b"),
    ("user_confirmed", r"\b(the )?user (has )?confirmed\b"),
    ("user_confirmed_pt", r"\bo usuario (ja )?confirmou\b"),
    ("planning", r"^\s*(plan|plano|reasoning|raciocinio|thought|pensamento)\s*:"),
    ("arguments", r"\b(arguments|argumentos)\s*[:=]\s*[{\[]"),
)

# Recurring confirmation phrasing; only the first occurrence per reply survives
CONFIRMATION_PATTERNS: tuple[NamedPattern, ...] = _table(
    ("quiz_updated_pt", r"\b(atualizei o quiz|quiz (foi )?atualizado)\b"),
    ("quiz_updated_en", r"\b(i(?:'ve| have)? updated the quiz|quiz (has been )?updated)\b"),
)

# Values the model writes instead of leaving a field out
NULLISH_TOKENS: frozenset[str] = frozenset(
    {
        "none",
        "null",
        "nil",
        "undefined",
        "n/a",
        "na",
        "-",
        "--",
        "tbd",
        "empty",
        "vazio",
        "nenhum",
        "nenhuma",
    }
)

# Schema words echoed back from the extraction prompt
PLACEHOLDER_KEYWORDS: tuple[NamedPattern, ...] = _table(
    ("string", r"\bstring\b"),
    ("url", r"\burl\b"),
    ("uuid", r"\buuid\b"),
    ("text", r"\b(text|texto)\b"),
    ("description", r"\b(description|descricao)\b"),
    ("title", r"\b(title|titulo)\b"),
)

OPTIONAL_MARKERS: tuple[NamedPattern, ...] = _table(
    ("optional", r"\b(optional|opcional)\b"),
)

# Hosts that only ever appear in made-up links
FAKE_DOMAINS: tuple[str, ...] = (
    "example.com",
    "example.org",
    "example.net",
    "placeholder.com",
    "via.placeholder",
    "placehold.co",
    "yourdomain",
    "your-domain",
    "yoursite",
    "seusite",
    "seu-site",
    "fakeurl",
)

REAL_VALUE_PREFIX = re.compile(r"^(https?://|data:image/)", re.IGNORECASE)


def normalize_for_match(text: str) -> str:
    """Strip diacritics and lower-case text for table matching."""
    if not text:
        return ""
    s = unicodedata.normalize("NFKD", text)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return s.lower().strip()


def matches_any(patterns: Iterable[NamedPattern], text: str) -> NamedPattern | None:
    """Return the first pattern in ``patterns`` found in ``text``."""
    for pattern in patterns:
        if pattern.regex.search(text):
            return pattern
    return None


def contains_any(needles: Iterable[str], text: str) -> str | None:
    """Return the first substring in ``needles`` present in ``text``."""
    for needle in needles:
        if needle in text:
            return needle
    return None


def extend_table(
    base: tuple[NamedPattern, ...], extra: Iterable[str], prefix: str = "extra"
) -> tuple[NamedPattern, ...]:
    """Append configured regexes to a built-in table, keeping order."""
    added = tuple(
        NamedPattern.compile(f"{prefix}_{index}", pattern)
        for index, pattern in enumerate(extra)
    )
    return base + added

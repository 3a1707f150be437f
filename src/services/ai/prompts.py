"""Prompts for the quiz structure extraction request.

The conversation is passed in explicitly on every call; nothing here keeps
history between turns.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from core.config import get_settings
from schemas.quiz import ChatMessage, QuizSnapshot


EXTRACTION_SYSTEM_PROMPT = """You are a quiz structure extractor. Extract quiz
information from the conversation and return ONLY valid JSON.

Your response must be a JSON object with this structure:
{
  "title": "...",
  "description": "...",
  "coverImageUrl": "...",
  "coverImagePrompt": "...",
  "ctaText": "...",
  "ctaUrl": "...",
  "questions": [
    {"text": "...", "imageUrl": "...",
     "options": [{"text": "...", "targetOutcomeId": "..."}]}
  ],
  "outcomes": [
    {"id": "...", "title": "...", "description": "...", "imageUrl": "...",
     "imagePrompt": "...", "ctaText": "...", "ctaUrl": "..."}
  ],
  "leadGen": {"enabled": true, "title": "...", "description": "...",
              "fields": ["name", "email", "phone"], "ctaText": "..."}
}

Rules:
- Return ONLY the JSON object, no explanations or markdown
- Leave out every field that did not change; never write placeholder values
- Keep questions and outcomes in their current order
- Reuse existing outcome ids in targetOutcomeId
- If nothing changed, return an empty object: {}"""


def summarize_quiz(current: QuizSnapshot) -> dict[str, object]:
    """Compact view of the document sent with each extraction request."""
    return {
        "title": current.title,
        "description": current.description,
        "questionsCount": len(current.questions),
        "outcomesCount": len(current.outcomes),
        "existingQuestionIds": [q.id for q in current.questions],
        "existingOutcomeIds": [o.id for o in current.outcomes],
        "leadGenEnabled": bool(current.lead_gen and current.lead_gen.enabled),
    }


def build_extraction_prompt(
    history: Sequence[ChatMessage], current: QuizSnapshot, window: int | None = None
) -> str:
    if window is None:
        window = get_settings().EXTRACTION_HISTORY_WINDOW
    recent = tuple(history)[-window:] if window > 0 else ()
    conversation = "\n".join(f"{m.role}: {m.content}" for m in recent)
    state = json.dumps(summarize_quiz(current), indent=2, ensure_ascii=False)
    return (
        "Extract quiz structure from this conversation.\n\n"
        f"CURRENT QUIZ STATE:\n{state}\n\n"
        f"CONVERSATION:\n{conversation}\n\n"
        "Extract and return the updated quiz structure. "
        "Preserve existing IDs when possible."
    )


def build_extraction_messages(
    history: Sequence[ChatMessage], current: QuizSnapshot, window: int | None = None
) -> list[dict[str, str]]:
    """Message list for an OpenAI-compatible chat completion request."""
    return [
        {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
        {"role": "user", "content": build_extraction_prompt(history, current, window)},
    ]

"""Shared test fixtures for pytest.

ENVIRONMENT is forced to ``test`` before anything reads settings so no
``.env`` file is needed.
"""

import os
from collections.abc import Callable, Iterator

import pytest


os.environ["ENVIRONMENT"] = "test"

from core.config import get_settings
from schemas.quiz import (
    AnswerOption,
    LeadGenSettings,
    Outcome,
    Question,
    QuizSnapshot,
)


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Drop cached settings so tests that patch env vars see their values."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def id_factory() -> Callable[[], str]:
    """Deterministic identifiers: id-1, id-2, ..."""
    counter = iter(range(1, 10_000))
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def empty_snapshot() -> QuizSnapshot:
    return QuizSnapshot()


@pytest.fixture
def snapshot() -> QuizSnapshot:
    """A small two-outcome personality quiz."""
    return QuizSnapshot(
        title="Qual sobremesa combina com você?",
        description="Descubra sua sobremesa ideal em três perguntas.",
        cover_image_url="https://cdn.multiquiz.app/covers/sobremesa.png",
        cta_text="Começar",
        questions=[
            Question(
                id="q-1",
                text="Qual é o seu programa favorito de domingo?",
                options=[
                    AnswerOption(id="o-1", text="Cinema em casa", target_outcome_id="r-1"),
                    AnswerOption(id="o-2", text="Trilha no parque", target_outcome_id="r-2"),
                ],
            ),
        ],
        outcomes=[
            Outcome(id="r-1", title="Brigadeiro", description="Clássico e aconchegante."),
            Outcome(id="r-2", title="Salada de frutas", description="Leve e animado."),
        ],
        lead_gen=LeadGenSettings(
            enabled=True,
            title="Receba sua receita",
            fields=["name", "email"],
            cta_text="Enviar",
        ),
    )

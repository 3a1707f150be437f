"""Tests for the end-to-end reply extraction pipeline."""

import json
import logging

import pytest
from pydantic_ai.messages import ModelResponse, TextPart, ToolCallPart

from schemas.extraction import OutcomeImageRequest, ProviderReply, ToolInvocation
from services.ai import extraction_pipeline
from services.ai.extraction_pipeline import (
    ReplyExtractionPipeline,
    coerce_reply,
    process_reply,
)


@pytest.fixture
def pipeline(id_factory):
    return ReplyExtractionPipeline(id_factory=id_factory)


def _call(name: str, arguments: str) -> ToolInvocation:
    return ToolInvocation(name=name, arguments_text=arguments)


class TestToolCallPath:
    def test_repaired_update_call(self, pipeline, empty_snapshot):
        """A malformed but repairable call still updates the document."""
        reply = ProviderReply(
            content="Atualizei o quiz!",
            tool_calls=[
                _call(
                    "update_quiz",
                    '{"title":"Quiz de sobremesas" "description":"Descubra seu doce"',
                )
            ],
        )
        outcome = pipeline.process(reply, empty_snapshot)

        assert outcome.text == "Atualizei o quiz!"
        assert outcome.delta.title == "Quiz de sobremesas"
        assert outcome.delta.description == "Descubra seu doce"
        assert outcome.issues == []
        assert outcome.success
        assert outcome.has_changes

    def test_multiple_update_calls_merge_in_order(self, pipeline, empty_snapshot):
        reply = ProviderReply(
            tool_calls=[
                _call("update_quiz", '{"title": "Primeiro", "ctaText": "Jogar"}'),
                _call("update_quiz", '{"title": "Segundo"}'),
            ]
        )
        delta = pipeline.process(reply, empty_snapshot).delta

        assert delta.title == "Segundo"
        assert delta.cta_text == "Jogar"

    def test_cover_image_call_sets_prompt(self, pipeline, empty_snapshot):
        reply = ProviderReply(
            tool_calls=[_call("generate_cover_image", '{"prompt": "Bolo de chocolate"}')]
        )
        outcome = pipeline.process(reply, empty_snapshot)

        assert outcome.delta.cover_image_prompt == "Bolo de chocolate"
        assert outcome.issues == []

    def test_update_prompt_takes_precedence_over_cover_call(self, pipeline, empty_snapshot):
        reply = ProviderReply(
            tool_calls=[
                _call("update_quiz", '{"coverImagePrompt": "Mesa de doces"}'),
                _call("generate_cover_image", '{"prompt": "Bolo de chocolate"}'),
            ]
        )
        delta = pipeline.process(reply, empty_snapshot).delta
        assert delta.cover_image_prompt == "Mesa de doces"

    def test_outcome_image_call_becomes_request(self, pipeline, snapshot):
        reply = ProviderReply(
            tool_calls=[
                _call(
                    "generate_outcome_image",
                    '{"outcomeId": "r-1", "prompt": "Brigadeiros em forminhas"}',
                )
            ]
        )
        outcome = pipeline.process(reply, snapshot)

        assert outcome.delta.is_empty()
        assert outcome.image_requests == [
            OutcomeImageRequest(outcome_id="r-1", prompt="Brigadeiros em forminhas")
        ]
        assert outcome.has_changes

    def test_outcome_image_follows_new_outcome_id(self, pipeline, empty_snapshot):
        """The image request uses the id assigned to an outcome from the same reply."""
        reply = ProviderReply(
            tool_calls=[
                _call("update_quiz", '{"outcomes": [{"id": "res-a", "title": "Aventureiro"}]}'),
                _call(
                    "generate_outcome_image",
                    '{"outcomeId": "res-a", "prompt": "Mochila na trilha"}',
                ),
            ]
        )
        outcome = pipeline.process(reply, empty_snapshot)

        assert [o.id for o in outcome.delta.outcomes] == ["id-1"]
        assert outcome.image_requests == [
            OutcomeImageRequest(outcome_id="id-1", prompt="Mochila na trilha")
        ]


class TestEmbeddedJsonPath:
    def test_embedded_json_used_and_hidden(self, pipeline, empty_snapshot):
        reply = ProviderReply(content='Claro! {"title": "Novo título"}')
        outcome = pipeline.process(reply, empty_snapshot)

        assert outcome.delta.title == "Novo título"
        assert outcome.text == "Claro!"

    def test_json_inside_reasoning_is_ignored(self, pipeline, empty_snapshot):
        reply = ProviderReply(
            content=(
                '<think>Rascunho interno: {"title": "Titulo secreto do rascunho"}</think>'
                "Vamos pensar juntos no seu quiz!"
            )
        )
        outcome = pipeline.process(reply, empty_snapshot)

        assert outcome.delta.is_empty()
        assert outcome.text == "Vamos pensar juntos no seu quiz!"
        assert outcome.error_codes == ["empty_payload"]

    def test_json_inside_private_note_is_ignored(self, pipeline, empty_snapshot):
        reply = ProviderReply(
            content='[INTERNAL]{"title": "Nota"}[/INTERNAL]Qual será o tema?'
        )
        outcome = pipeline.process(reply, empty_snapshot)

        assert outcome.delta.is_empty()
        assert outcome.text == "Qual será o tema?"

    def test_reasoning_removed_when_visible_json_applied(self, pipeline, empty_snapshot):
        reply = ProviderReply(
            content='<think>pensando</think>Pronto! {"title": "Quiz de frutas"}'
        )
        outcome = pipeline.process(reply, empty_snapshot)

        assert outcome.delta.title == "Quiz de frutas"
        assert outcome.text == "Pronto!"

    @pytest.mark.parametrize(
        "content",
        [
            "Use o formato {nome} no titulo da pergunta.",
            "Oi! Pode usar chaves { assim\nE mais uma linha de conversa.",
        ],
    )
    def test_braces_in_prose_stay_in_transcript(self, pipeline, empty_snapshot, content):
        outcome = pipeline.process(ProviderReply(content=content), empty_snapshot)

        assert outcome.delta.is_empty()
        assert outcome.text == content

    def test_plain_text_reports_empty_payload(self, pipeline, empty_snapshot):
        outcome = pipeline.process("Qual é o tema do quiz?", empty_snapshot)

        assert outcome.text == "Qual é o tema do quiz?"
        assert outcome.delta.is_empty()
        assert outcome.error_codes == ["empty_payload"]
        assert not outcome.success


class TestFailureModes:
    def test_unparsable_payload_is_not_fatal(self, pipeline, empty_snapshot, caplog):
        reply = ProviderReply(
            content="Vamos continuar.",
            tool_calls=[_call("update_quiz", "contato: ana@exemplo.com.br")],
        )
        with caplog.at_level(logging.WARNING):
            outcome = pipeline.process(reply, empty_snapshot)

        assert outcome.text == "Vamos continuar."
        assert outcome.delta.is_empty()
        assert outcome.error_codes == ["unparsable_json"]
        assert "Discarded unparsable structured payload" in caplog.text
        assert "ana@exemplo.com.br" not in caplog.text

    def test_array_payload_is_unrecognized_shape(self, pipeline, empty_snapshot):
        reply = ProviderReply(tool_calls=[_call("update_quiz", '["a", "b"]')])
        outcome = pipeline.process(reply, empty_snapshot)

        assert outcome.delta.is_empty()
        assert outcome.error_codes == ["unrecognized_shape"]


class TestReplyShapes:
    def test_chat_completion_body(self, pipeline, empty_snapshot):
        body = {
            "choices": [
                {
                    "message": {
                        "content": "Feito.",
                        "tool_calls": [
                            {
                                "id": "call_1",
                                "type": "function",
                                "function": {
                                    "name": "update_quiz",
                                    "arguments": json.dumps({"ctaText": "Jogar agora"}),
                                },
                            }
                        ],
                    }
                }
            ]
        }
        outcome = pipeline.process(body, empty_snapshot)

        assert outcome.text == "Feito."
        assert outcome.delta.cta_text == "Jogar agora"

    def test_model_response(self, pipeline, empty_snapshot):
        response = ModelResponse(
            parts=[
                TextPart(content="Feito."),
                ToolCallPart(tool_name="update_quiz", args={"title": "Quiz de viagem"}),
            ]
        )
        outcome = pipeline.process(response, empty_snapshot)

        assert outcome.text == "Feito."
        assert outcome.delta.title == "Quiz de viagem"

    def test_unsupported_reply_type(self):
        with pytest.raises(TypeError):
            coerce_reply(42)  # type: ignore[arg-type]


class TestProcessReply:
    def test_uses_configured_leak_patterns(self, monkeypatch, empty_snapshot):
        monkeypatch.setenv("EXTRA_LEAK_PATTERNS", "nota da equipe")
        monkeypatch.setattr(extraction_pipeline, "_pipeline", None)

        outcome = process_reply("Nota da equipe: revisar\nOi!", empty_snapshot)
        assert outcome.text == "Oi!"

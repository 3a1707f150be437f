"""Tests for the structured-call registry."""

from services.ai.tools import (
    COVER_IMAGE_TOOL,
    KNOWN_TOOL_NAMES,
    OUTCOME_IMAGE_TOOL,
    UPDATE_QUIZ_TOOL,
    UpdateQuizArgs,
    build_openai_tools,
    build_tool_definitions,
    is_known_tool,
)


class TestRegistry:
    def test_known_tools(self):
        assert KNOWN_TOOL_NAMES == {UPDATE_QUIZ_TOOL, COVER_IMAGE_TOOL, OUTCOME_IMAGE_TOOL}
        assert is_known_tool("update_quiz")
        assert not is_known_tool("updateQuiz")

    def test_tool_definitions_use_camel_case_schema(self):
        definitions = {d.name: d for d in build_tool_definitions()}

        update = definitions[UPDATE_QUIZ_TOOL].parameters_json_schema
        assert "coverImagePrompt" in update["properties"]
        assert "leadGen" in update["properties"]
        assert "cover_image_prompt" not in update["properties"]

        outcome_image = definitions[OUTCOME_IMAGE_TOOL].parameters_json_schema
        assert set(outcome_image["required"]) == {"outcomeId", "prompt"}

    def test_openai_format(self):
        tools = build_openai_tools()

        assert [t["type"] for t in tools] == ["function"] * 3
        names = [t["function"]["name"] for t in tools]
        assert names == [UPDATE_QUIZ_TOOL, COVER_IMAGE_TOOL, OUTCOME_IMAGE_TOOL]
        assert all(t["function"]["description"] for t in tools)

    def test_update_args_accept_wire_format(self):
        args = UpdateQuizArgs.model_validate(
            {"title": "Quiz", "leadGen": {"enabled": True, "fields": ["email"]}}
        )
        assert args.lead_gen is not None
        assert args.lead_gen.fields == ["email"]

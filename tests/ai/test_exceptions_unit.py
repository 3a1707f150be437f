from core.exceptions import DomainError
from services.ai.exceptions import (
    AIExtractionError,
    EmptyPayloadError,
    UnparsableJSONError,
    UnrecognizedShapeError,
)
from services.ai.json_repair import ParseError


def test_error_codes_are_stable():
    assert UnparsableJSONError().error_code == "unparsable_json"
    assert UnrecognizedShapeError().error_code == "unrecognized_shape"
    assert EmptyPayloadError().error_code == "empty_payload"


def test_hierarchy():
    for error in (UnparsableJSONError(), UnrecognizedShapeError(), EmptyPayloadError()):
        assert isinstance(error, AIExtractionError)
        assert isinstance(error, DomainError)


def test_unparsable_carries_diagnostics():
    error = UnparsableJSONError(
        last_error=ParseError(offset=3, message="Expecting value"),
        candidate_text='{"a":}',
        attempts=4,
    )
    assert error.last_error == ParseError(offset=3, message="Expecting value")
    assert error.candidate_text == '{"a":}'
    assert error.attempts == 4


def test_custom_message():
    error = UnrecognizedShapeError("Expected an object")
    assert error.message == "Expected an object"
    assert str(error) == "unrecognized_shape: Expected an object"

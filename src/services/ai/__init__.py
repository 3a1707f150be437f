"""Init file for AI services."""

from .extraction_pipeline import ExtractionOutcome, ReplyExtractionPipeline, process_reply
from .json_repair import repair_json
from .normalizer import normalize_extraction, normalize_payload, sanitize_optional_string
from .sanitizer import sanitize_reply


__all__ = [
    "ExtractionOutcome",
    "ReplyExtractionPipeline",
    "normalize_extraction",
    "normalize_payload",
    "process_reply",
    "repair_json",
    "sanitize_optional_string",
    "sanitize_reply",
]

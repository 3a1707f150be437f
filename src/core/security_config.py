"""Security configuration constants for the quiz assistant.

Centralizes the keys that must be redacted from structured logs. Quiz leads
carry personal data (name, email, phone) and provider calls carry API keys,
so both families are listed here.
"""

# Keys redacted by StructuredLogger before anything reaches a log handler
SENSITIVE_KEYS: set[str] = {
    # Provider credentials
    "secret",
    "token",
    "authorization",
    "api_key",
    "bearer",
    "x-api-key",
    # Lead capture PII
    "email",
    "phone",
    "phone_number",
    "lead",
    # Raw model output may echo user-provided content
    "raw_reply",
    "arguments_text",
    "candidate_text",
}


def is_sensitive_key(key: str) -> bool:
    """Check if a key should be considered sensitive and redacted.

    Args:
        key: The key name to check

    Returns:
        True if the key should be redacted, False otherwise
    """
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)

"""Application settings for the quiz assistant extraction core."""

import json
import os
import re
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "MultiQuiz"
    ENVIRONMENT: str = "development"  # development | production | test
    LOG_LEVEL: str | None = None  # overrides the environment default when set

    # JSON repair ladder
    JSON_REPAIR_MAX_ATTEMPTS: int = Field(default=5, ge=1, le=5)

    # Number of chat messages included in the extraction prompt
    EXTRACTION_HISTORY_WINDOW: int = Field(default=10, ge=1)

    # Additional leak patterns appended to the built-in table.
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    EXTRA_LEAK_PATTERNS: list[str] | str = []

    @field_validator("EXTRA_LEAK_PATTERNS", mode="before")
    @classmethod
    def assemble_leak_patterns(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for leak patterns."""
        if isinstance(v, list):
            patterns = [str(i).strip() for i in v if str(i).strip()]
        elif isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "EXTRA_LEAK_PATTERNS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("EXTRA_LEAK_PATTERNS JSON must be a list")
                patterns = [str(i).strip() for i in parsed if str(i).strip()]
            else:
                # CSV fallback
                patterns = [i.strip() for i in s.split(",") if i.strip()]
        else:
            raise ValueError("Invalid EXTRA_LEAK_PATTERNS type; expected str or list[str]")

        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid leak pattern {pattern!r}: {e}") from e
        return patterns

    @property
    def extra_leak_patterns(self) -> list[str]:
        if isinstance(self.EXTRA_LEAK_PATTERNS, str):
            return self.assemble_leak_patterns(self.EXTRA_LEAK_PATTERNS)
        return list(self.EXTRA_LEAK_PATTERNS)


# Tests run on defaults and environment variables only
_ENV_FILES: dict[str, str | None] = {
    "development": ".env.dev",
    "production": ".env.prod",
    "test": None,
}


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process for the current ENVIRONMENT."""
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in _ENV_FILES:
        raise ValueError(
            f"ENVIRONMENT must be one of {', '.join(sorted(_ENV_FILES))}, got {env!r}"
        )
    # `_env_file` is a runtime-only pydantic-settings argument
    return Settings(_env_file=_ENV_FILES[env])  # type: ignore[call-arg]

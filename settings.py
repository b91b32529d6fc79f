"""
Service configuration.

One validated settings object per process, read from environment variables
once at startup. Unknown fields are rejected and bad values fail here rather
than deep inside a request.
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from search_index import DEFAULT_INDEX_NAME


class ConfigurationError(Exception):
    """Raised when the environment does not describe a usable configuration."""


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Configuration shared by the ingestion pipeline, answer service and MCP server."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    elastic_endpoint: Optional[str] = Field(
        default=None,
        description="Elasticsearch endpoint URL"
    )
    elastic_api_key: Optional[str] = None
    elastic_index: str = Field(default=DEFAULT_INDEX_NAME, min_length=1)

    gemini_api_key: Optional[str] = None
    gemini_model: str = Field(default="gemini-flash-latest", min_length=1)
    gemini_fallback_model: str = Field(default="gemini-flash-lite-latest", min_length=1)

    github_token: Optional[str] = None

    answer_max_retries: int = Field(default=2, ge=1, le=10)
    allow_ungrounded_fallback: bool = True
    package_match_floor: int = Field(default=60, ge=0, le=100)
    http_timeout: float = Field(default=30.0, gt=0)

    @field_validator("elastic_endpoint")
    @classmethod
    def _check_endpoint(cls, value: Optional[str]) -> Optional[str]:
        if value and not value.startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
        return value.rstrip("/") if value else value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ`` (tests)

        Raises:
            ConfigurationError: If a value fails validation
        """
        env = os.environ if environ is None else environ
        values = {
            "elastic_endpoint": env.get("ELASTIC_ENDPOINT"),
            "elastic_api_key": env.get("ELASTIC_API_KEY"),
            "gemini_api_key": env.get("GEMINI_API_KEY") or env.get("VERTEX_AI_API_KEY"),
            "github_token": env.get("GITHUB_TOKEN"),
        }

        optional = {
            "elastic_index": env.get("ELASTIC_INDEX"),
            "gemini_model": env.get("GEMINI_MODEL"),
            "gemini_fallback_model": env.get("GEMINI_FALLBACK_MODEL"),
            "answer_max_retries": env.get("ANSWER_MAX_RETRIES"),
            "package_match_floor": env.get("PACKAGE_MATCH_FLOOR"),
            "http_timeout": env.get("HTTP_TIMEOUT"),
        }
        values.update({k: v for k, v in optional.items() if v})

        ungrounded = env.get("ALLOW_UNGROUNDED_FALLBACK")
        if ungrounded:
            values["allow_ungrounded_fallback"] = _parse_bool(ungrounded)

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def require_index(self) -> str:
        """Return the Elasticsearch endpoint, failing if it is not configured."""
        if not self.elastic_endpoint:
            raise ConfigurationError("Missing ELASTIC_ENDPOINT environment variable")
        return self.elastic_endpoint

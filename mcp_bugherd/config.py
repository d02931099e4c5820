"""Environment configuration for the BugHerd MCP server."""

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .models import ConfigurationError

DEFAULT_BASE_URL = "https://www.bugherd.com/api_v2"

# Environment variable for each settings field
ENV_VARS: dict[str, str] = {
    "api_key": "BUGHERD_API_KEY",
    "project_id": "BUGHERD_PROJECT_ID",
    "bot_user_id": "BUGHERD_BOT_USER_ID",
    "description_max_chars": "BUGHERD_DESCRIPTION_MAX_CHARS",
    "comment_max_chars": "BUGHERD_COMMENT_MAX_CHARS",
    "page_size": "BUGHERD_PAGE_SIZE",
    "active_column_ids": "BUGHERD_ACTIVE_COLUMN_IDS",
    "agent_signature": "BUGHERD_AGENT_SIGNATURE",
    "agent_signature_separator": "BUGHERD_AGENT_SIGNATURE_SEPARATOR",
    "base_url": "BUGHERD_BASE_URL",
    "timeout": "BUGHERD_TIMEOUT",
}


class Settings(BaseModel):
    """Validated server settings."""

    model_config = ConfigDict(frozen=True)

    api_key: str = Field(min_length=1)
    project_id: int = Field(gt=0)
    bot_user_id: int = Field(gt=0)
    description_max_chars: int = Field(default=4000, gt=0)
    comment_max_chars: int = Field(default=2000, gt=0)
    page_size: int = Field(default=20, ge=1, le=100)
    active_column_ids: tuple[int, ...] | None = None
    agent_signature: str | None = None
    agent_signature_separator: str = "\n\n"
    base_url: str = DEFAULT_BASE_URL
    timeout: float = Field(default=30.0, gt=0)

    @field_validator("active_column_ids", mode="before")
    @classmethod
    def parse_column_ids(cls, v: object) -> object:
        """Parse a comma-separated list of positive column ids."""
        if not isinstance(v, str):
            return v
        parts = [part.strip() for part in v.split(",") if part.strip()]
        ids: list[int] = []
        for part in parts:
            if not (part.isascii() and part.isdigit()) or int(part) <= 0:
                raise ValueError(f"invalid entry '{part}', expected positive integer ids separated by commas")
            ids.append(int(part))
        return tuple(ids) or None

    @field_validator("agent_signature", mode="before")
    @classmethod
    def blank_signature_is_none(cls, v: object) -> object:
        """Treat an empty signature as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables.

        Raises:
            ConfigurationError: Listing every invalid or missing variable.
        """
        env = os.environ if environ is None else environ
        values = {name: env[var] for name, var in ENV_VARS.items() if env.get(var, "").strip() != ""}
        # Separator whitespace is significant
        if ENV_VARS["agent_signature_separator"] in env:
            values["agent_signature_separator"] = env[ENV_VARS["agent_signature_separator"]]
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigurationError(_format_validation_errors(e)) from e

    def apply_signature(self, text: str) -> str:
        """Append the agent signature unless the text already ends with it."""
        if not self.agent_signature:
            return text
        trimmed = text.rstrip()
        if trimmed.endswith(self.agent_signature.strip()):
            return text
        return trimmed + self.agent_signature_separator + self.agent_signature


def _format_validation_errors(error: ValidationError) -> str:
    lines = ["Invalid environment configuration:"]
    for issue in error.errors():
        field = str(issue["loc"][0]) if issue["loc"] else "(root)"
        lines.append(f"- {ENV_VARS.get(field, field)}: {issue['msg']}")
    return "\n".join(lines)

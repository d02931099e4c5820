"""Tests for environment configuration."""

import pytest

from mcp_bugherd.config import DEFAULT_BASE_URL, Settings
from mcp_bugherd.models import ConfigurationError

BASE_ENV = {
    "BUGHERD_API_KEY": "secret",
    "BUGHERD_PROJECT_ID": "42",
    "BUGHERD_BOT_USER_ID": "7",
}


def test_defaults():
    settings = Settings.from_env(BASE_ENV)

    assert settings.api_key == "secret"
    assert settings.project_id == 42
    assert settings.bot_user_id == 7
    assert settings.description_max_chars == 4000
    assert settings.comment_max_chars == 2000
    assert settings.page_size == 20
    assert settings.active_column_ids is None
    assert settings.agent_signature is None
    assert settings.agent_signature_separator == "\n\n"
    assert settings.base_url == DEFAULT_BASE_URL
    assert settings.timeout == 30.0


def test_overrides():
    env = {
        **BASE_ENV,
        "BUGHERD_DESCRIPTION_MAX_CHARS": "100",
        "BUGHERD_COMMENT_MAX_CHARS": "80",
        "BUGHERD_PAGE_SIZE": "5",
        "BUGHERD_ACTIVE_COLUMN_IDS": "10, 11,,12",
        "BUGHERD_AGENT_SIGNATURE": "-- bot",
        "BUGHERD_AGENT_SIGNATURE_SEPARATOR": " | ",
        "BUGHERD_TIMEOUT": "5",
    }
    settings = Settings.from_env(env)

    assert settings.description_max_chars == 100
    assert settings.comment_max_chars == 80
    assert settings.page_size == 5
    assert settings.active_column_ids == (10, 11, 12)
    assert settings.agent_signature == "-- bot"
    assert settings.agent_signature_separator == " | "
    assert settings.timeout == 5.0


def test_empty_values_fall_back_to_defaults():
    settings = Settings.from_env({**BASE_ENV, "BUGHERD_PAGE_SIZE": "", "BUGHERD_AGENT_SIGNATURE": "  "})
    assert settings.page_size == 20
    assert settings.agent_signature is None


def test_missing_required_variables_listed():
    with pytest.raises(ConfigurationError) as exc_info:
        Settings.from_env({})

    message = str(exc_info.value)
    assert message.startswith("Invalid environment configuration:")
    for var in ("BUGHERD_API_KEY", "BUGHERD_PROJECT_ID", "BUGHERD_BOT_USER_ID"):
        assert var in message


@pytest.mark.parametrize(
    "var,value",
    [
        ("BUGHERD_PROJECT_ID", "abc"),
        ("BUGHERD_PAGE_SIZE", "0"),
        ("BUGHERD_PAGE_SIZE", "101"),
        ("BUGHERD_DESCRIPTION_MAX_CHARS", "-1"),
        ("BUGHERD_ACTIVE_COLUMN_IDS", "10,x"),
        ("BUGHERD_ACTIVE_COLUMN_IDS", "0"),
        ("BUGHERD_ACTIVE_COLUMN_IDS", "10,²"),
    ],
)
def test_invalid_values(var, value):
    with pytest.raises(ConfigurationError, match=var):
        Settings.from_env({**BASE_ENV, var: value})


class TestAgentSignature:
    """Test signature handling for bot comments."""

    def test_no_signature(self):
        settings = Settings.from_env(BASE_ENV)
        assert settings.apply_signature("Fixed.") == "Fixed."

    def test_signature_appended(self):
        settings = Settings.from_env({**BASE_ENV, "BUGHERD_AGENT_SIGNATURE": "-- bot"})
        assert settings.apply_signature("Fixed.  ") == "Fixed.\n\n-- bot"

    def test_signature_appended_once(self):
        settings = Settings.from_env({**BASE_ENV, "BUGHERD_AGENT_SIGNATURE": "-- bot"})
        signed = settings.apply_signature("Fixed.")
        assert settings.apply_signature(signed) == signed

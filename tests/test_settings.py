"""
配置加载单元测试
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from chatrelay.config.settings import Settings

ENV_VARS = [
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_ALLOWED_USERS",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "IMAGE_HISTORY_POLICY",
    "MAX_CONCURRENT_COMPLETIONS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def make_settings(**overrides) -> Settings:
    params = {"TELEGRAM_BOT_TOKEN": "123:abc", "OPENAI_API_KEY": "sk-test"}
    params.update(overrides)
    return Settings(_env_file=None, **params)


def test_defaults():
    settings = make_settings()
    assert settings.OPENAI_MODEL == "gpt-4o-mini"
    assert settings.MAX_TOKENS == 1000
    assert settings.TEMPERATURE == 0.7
    assert settings.IMAGE_HISTORY_POLICY == "stateless"
    assert settings.HISTORY_WINDOW == 0
    assert settings.allowed_users == frozenset()


def test_missing_bot_token_fails():
    with pytest.raises(ValidationError, match="TELEGRAM_BOT_TOKEN"):
        Settings(_env_file=None, OPENAI_API_KEY="sk-test")


def test_missing_api_key_fails():
    with pytest.raises(ValidationError, match="OPENAI_API_KEY"):
        Settings(_env_file=None, TELEGRAM_BOT_TOKEN="123:abc")


def test_allowed_users_parsing():
    settings = make_settings(TELEGRAM_ALLOWED_USERS="1, 2 3,,-100")
    assert settings.allowed_users == frozenset({1, 2, 3, -100})


def test_allowed_users_rejects_names():
    with pytest.raises(ValidationError):
        make_settings(TELEGRAM_ALLOWED_USERS="1,alice")


def test_image_policy_is_normalized():
    assert make_settings(IMAGE_HISTORY_POLICY=" Persist ").IMAGE_HISTORY_POLICY == "persist"
    with pytest.raises(ValidationError):
        make_settings(IMAGE_HISTORY_POLICY="sometimes")


def test_concurrency_must_be_positive():
    with pytest.raises(ValidationError):
        make_settings(MAX_CONCURRENT_COMPLETIONS=0)


def test_reads_environment():
    env = {
        "TELEGRAM_BOT_TOKEN": "env-token",
        "OPENAI_API_KEY": "env-key",
        "OPENAI_MODEL": "gpt-env",
    }
    with patch.dict(os.environ, env):
        settings = Settings(_env_file=None)

    assert settings.TELEGRAM_BOT_TOKEN == "env-token"
    assert settings.OPENAI_MODEL == "gpt-env"

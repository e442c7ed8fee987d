import logging

import pytest
from pydantic import ValidationError

from noteflow.config import get_config_path, load_config
from noteflow.retry import RetryPolicy
from noteflow.tasks import TaskRunner


def write_config(text: str) -> None:
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_defaults_without_config_file():
    config = load_config()

    assert config["retry"] == {
        "max_attempts": 3,
        "initial_delay": 1000,
        "backoff_multiplier": 2,
        "max_delay": 10000,
        "jitter": True,
    }
    assert config["queue"]["max_concurrency"] == 3
    assert config["noteflow"] == {"locale": "en"}


def test_config_file_is_merged_over_defaults():
    write_config(
        """
[retry]
max_attempts = 5
jitter = false

[llm]
model = "claude-sonnet-4-5"
"""
    )

    config = load_config()

    assert config["retry"]["max_attempts"] == 5
    assert config["retry"]["jitter"] is False
    assert config["retry"]["max_delay"] == 10000
    assert config["llm"] == {"provider": "anthropic", "model": "claude-sonnet-4-5"}


def test_env_overrides_config_file(monkeypatch):
    write_config("[retry]\nmax_attempts = 5\n")
    monkeypatch.setenv("NOTEFLOW_MAX_RETRY_ATTEMPTS", "7")
    monkeypatch.setenv("NOTEFLOW_RETRY_INITIAL_DELAY", "250")
    monkeypatch.setenv("NOTEFLOW_RETRY_JITTER", "off")

    policy = RetryPolicy.from_config(load_config())

    assert policy.max_attempts == 7
    assert policy.initial_delay == 250
    assert policy.jitter is False


def test_bad_env_values_are_ignored(monkeypatch, caplog):
    monkeypatch.setenv("NOTEFLOW_MAX_RETRY_ATTEMPTS", "lots")
    monkeypatch.setenv("NOTEFLOW_RETRY_JITTER", "maybe")

    with caplog.at_level(logging.WARNING, logger="noteflow.config"):
        config = load_config()

    assert config["retry"]["max_attempts"] == 3
    assert config["retry"]["jitter"] is True
    assert "NOTEFLOW_MAX_RETRY_ATTEMPTS" in caplog.text
    assert "NOTEFLOW_RETRY_JITTER" in caplog.text


def test_blank_env_values_are_ignored(monkeypatch):
    monkeypatch.setenv("NOTEFLOW_RETRY_MAX_DELAY", "  ")

    assert load_config()["retry"]["max_delay"] == 10000


def test_out_of_range_env_values_are_ignored(monkeypatch, caplog):
    monkeypatch.setenv("NOTEFLOW_MAX_RETRY_ATTEMPTS", "0")
    monkeypatch.setenv("NOTEFLOW_RETRY_BACKOFF_MULTIPLIER", "0.5")
    monkeypatch.setenv("NOTEFLOW_RETRY_MAX_DELAY", "nan")

    with caplog.at_level(logging.WARNING, logger="noteflow.config"):
        policy = RetryPolicy.from_config(load_config())

    assert policy.max_attempts == 3
    assert policy.backoff_multiplier == 2
    assert policy.max_delay == 10000
    assert "NOTEFLOW_MAX_RETRY_ATTEMPTS" in caplog.text
    assert "NOTEFLOW_RETRY_BACKOFF_MULTIPLIER" in caplog.text
    assert "NOTEFLOW_RETRY_MAX_DELAY" in caplog.text


def test_env_initial_delay_above_cap_is_lowered(monkeypatch, caplog):
    monkeypatch.setenv("NOTEFLOW_RETRY_INITIAL_DELAY", "20000")

    with caplog.at_level(logging.WARNING, logger="noteflow.config"):
        config = load_config()

    assert config["retry"]["initial_delay"] == 10000
    assert "exceeds max_delay" in caplog.text

    runner = TaskRunner.from_config(config)
    assert runner.policy.initial_delay == 10000
    assert runner.policy.max_delay == 10000


def test_env_max_delay_below_initial_delay_is_honoured(monkeypatch):
    monkeypatch.setenv("NOTEFLOW_RETRY_MAX_DELAY", "500")

    policy = RetryPolicy.from_config(load_config())

    assert policy.max_delay == 500
    assert policy.initial_delay == 500


def test_invalid_config_file_values_still_raise():
    write_config("[retry]\ninitial_delay = 20000\n")

    with pytest.raises(ValidationError):
        RetryPolicy.from_config(load_config())

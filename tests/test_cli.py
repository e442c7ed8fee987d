import logging
import sys

import pytest

from noteflow import __version__
from noteflow.cli import main


def run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["noteflow", *args])
    return main()


def test_help(monkeypatch, capsys):
    assert run(monkeypatch, "--help") == 0
    assert "noteflow explain" in capsys.readouterr().out


def test_version(monkeypatch, capsys):
    assert run(monkeypatch, "--version") == 0
    assert capsys.readouterr().out.strip() == f"noteflow {__version__}"


def test_explain_rate_limit(monkeypatch, capsys):
    assert run(monkeypatch, "explain", "--status", "429", "Rate", "limit", "exceeded") == 0

    out = capsys.readouterr().out
    assert "Kind:      rate_limit_error" in out
    assert "Status:    429" in out
    assert "Retryable: yes" in out
    assert "Too many requests:" in out


def test_explain_status_only(monkeypatch, capsys):
    assert run(monkeypatch, "explain", "--status", "500") == 0

    out = capsys.readouterr().out
    assert "Kind:      server_error" in out
    assert "Server error:" in out


def test_explain_zh(monkeypatch, capsys):
    assert run(monkeypatch, "explain", "--locale", "zh", "--status", "401", "denied") == 0
    assert "API 密钥无效" in capsys.readouterr().out


def test_explain_bad_status(monkeypatch, capsys):
    assert run(monkeypatch, "explain", "--status", "abc", "x") == 1
    assert "--status expects a number" in capsys.readouterr().err


def test_explain_needs_input(monkeypatch, capsys):
    assert run(monkeypatch, "explain") == 1


def test_ask_without_key(monkeypatch, capsys):
    assert run(monkeypatch, "ask", "hello") == 1
    assert "API key not found" in capsys.readouterr().err


def test_ask_failure_shows_only_user_message(monkeypatch, capsys):
    from noteflow.llm import LLMClient, LLMHTTPError

    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")

    async def failing_complete(self, prompt, max_tokens=1024):
        raise LLMHTTPError("invalid x-api-key sk-secret", status_code=401)

    monkeypatch.setattr(LLMClient, "complete", failing_complete)

    assert run(monkeypatch, "ask", "hello") == 1
    err = capsys.readouterr().err
    assert "Invalid API key" in err
    assert "sk-secret" not in err


def test_ask_auth_failure_keeps_api_text_out_of_output(monkeypatch, capsys, caplog):
    import httpx

    from noteflow import llm

    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-secret-123")
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(
            401,
            json={"type": "error", "error": {"message": "invalid x-api-key sk-secret-123"}},
        )

    real_client = httpx.AsyncClient

    def mocked_client(**kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(**kwargs)

    monkeypatch.setattr(llm.httpx, "AsyncClient", mocked_client)

    with caplog.at_level(logging.DEBUG):
        assert run(monkeypatch, "ask", "hello") == 1

    assert len(requests) == 1
    err = capsys.readouterr().err
    assert "Invalid API key" in err
    assert "sk-secret-123" not in err

    loud = [r for r in caplog.records if r.levelno >= logging.WARNING]
    assert any("authentication_error, status 401" in r.getMessage() for r in loud)
    assert all("sk-secret-123" not in r.getMessage() for r in loud)
    assert any("sk-secret-123" in r.getMessage() for r in caplog.records if r.levelno == logging.DEBUG)


def test_ask_prints_reply(monkeypatch, capsys):
    from noteflow.llm import LLMClient

    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")

    async def fake_complete(self, prompt, max_tokens=1024):
        return f"echo: {prompt}"

    monkeypatch.setattr(LLMClient, "complete", fake_complete)

    assert run(monkeypatch, "ask", "hello", "there") == 0
    assert capsys.readouterr().out.strip() == "echo: hello there"


def test_config_shows_policy(monkeypatch, capsys):
    monkeypatch.setenv("NOTEFLOW_MAX_RETRY_ATTEMPTS", "4")

    assert run(monkeypatch, "config") == 0

    out = capsys.readouterr().out
    assert "max_attempts:       4" in out
    assert "jitter:             on" in out


def test_config_reports_invalid_settings(monkeypatch, capsys):
    from noteflow.config import get_config_path

    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("[retry]\nmax_attempts = 0\n", encoding="utf-8")

    assert run(monkeypatch, "config") == 1
    assert "invalid [retry] settings" in capsys.readouterr().err


@pytest.mark.parametrize("command", ["frobnicate", "capture"])
def test_unknown_command(monkeypatch, capsys, command):
    assert run(monkeypatch, command) == 1
    assert "Unknown command" in capsys.readouterr().err

"""
LLM client for Noteflow.

Async HTTP calls to Anthropic or OpenAI, wrapped in retry_with_backoff.
Failed calls raise LLMError subclasses shaped so the error classifier can
read their status and message.
"""

import json
import logging
import os
from typing import Any

import httpx

from noteflow.config import load_config
from noteflow.retry import RetryPolicy, classifier_policy, retry_with_backoff

logger = logging.getLogger(__name__)

# Default models for each provider
DEFAULT_MODELS = {
    "anthropic": "claude-haiku-4-5-20251001",
    "openai": "gpt-4o-mini",
}

DEFAULT_BASE_URLS = {
    "anthropic": "https://api.anthropic.com/v1",
    "openai": "https://api.openai.com/v1",
}


class LLMError(Exception):
    """Base class for LLM call failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class LLMHTTPError(LLMError):
    """Non-2xx response from the provider."""

    def __init__(self, message: str, status_code: int, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class LLMResponseError(LLMError):
    """2xx response whose content could not be parsed."""


def _error_message(response: httpx.Response) -> tuple[str, Any]:
    """Pull the provider's error message out of a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase, None

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"]), body
    return response.text or response.reason_phrase, body


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json fence if the model added one."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")[1:]  # drop ```json
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text


class LLMClient:
    """Async LLM client with retry. Supports Anthropic and OpenAI."""

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        self.config = config or load_config()
        self.llm_config = self.config.get("llm", {})
        self.provider = self.llm_config.get("provider", "anthropic")
        self.transport = transport
        self.timeout = timeout

        if self.provider == "anthropic":
            self.api_key = (
                self.llm_config.get("anthropic_api_key")
                or os.environ.get("ANTHROPIC_API_KEY")
            )
            self.base_url = (
                self.llm_config.get("base_url")
                or os.environ.get("ANTHROPIC_BASE_URL")
                or DEFAULT_BASE_URLS["anthropic"]
            )
            if not self.api_key:
                raise ValueError(
                    "Anthropic API key not found. Set ANTHROPIC_API_KEY env var or add to config."
                )
        elif self.provider == "openai":
            self.api_key = (
                self.llm_config.get("openai_api_key")
                or os.environ.get("OPENAI_API_KEY")
            )
            self.base_url = self.llm_config.get("base_url", DEFAULT_BASE_URLS["openai"])
            if not self.api_key:
                raise ValueError(
                    "OpenAI API key not found. Set OPENAI_API_KEY env var or add to config."
                )
        else:
            raise ValueError(f"Unknown LLM provider: {self.provider}")

        self.model = self.llm_config.get("model", DEFAULT_MODELS[self.provider])
        self.base_url = self.base_url.rstrip("/")
        self.policy = classifier_policy(policy or RetryPolicy.from_config(self.config))

    async def complete(self, prompt: str, max_tokens: int = 1024) -> str:
        """Send one prompt and return the text reply, retrying transient failures."""
        return await retry_with_backoff(
            lambda: self._request(prompt, max_tokens), self.policy
        )

    async def complete_json(self, prompt: str, max_tokens: int = 1024) -> dict[str, Any]:
        """Like complete(), but parse the reply as a JSON object."""

        async def attempt() -> dict[str, Any]:
            text = await self._request(prompt, max_tokens)
            try:
                data = json.loads(strip_code_fence(text))
            except json.JSONDecodeError as e:
                raise LLMResponseError(f"Failed to parse JSON from LLM response: {e}") from e
            if not isinstance(data, dict):
                raise LLMResponseError("Invalid response: expected a JSON object")
            return data

        return await retry_with_backoff(attempt, self.policy)

    async def _request(self, prompt: str, max_tokens: int) -> str:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            if self.provider == "anthropic":
                response = await client.post(
                    f"{self.base_url}/messages",
                    headers={
                        "x-api-key": self.api_key,
                        "Content-Type": "application/json",
                        "anthropic-version": "2023-06-01",
                    },
                    json={
                        "model": self.model,
                        "max_tokens": max_tokens,
                        "messages": [{"role": "user", "content": prompt}],
                    },
                )
            else:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "model": self.model,
                        "max_tokens": max_tokens,
                        "messages": [{"role": "user", "content": prompt}],
                    },
                )

        if response.is_error:
            message, body = _error_message(response)
            raise LLMHTTPError(message, status_code=response.status_code, body=body)

        try:
            data = response.json()
            if self.provider == "anthropic":
                return data["content"][0]["text"]
            return data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMResponseError(f"Invalid response from {self.provider}: {e}") from e

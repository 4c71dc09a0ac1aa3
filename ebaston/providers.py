"""Completion providers: one system prompt + one user message in, text out.

Groq and OpenRouter speak the OpenAI chat-completions dialect, Anthropic has
its own messages API, and Ollama serves local models. All of them raise
CompletionError for transport and HTTP failures.
"""

from typing import Protocol

import httpx
import requests

from ebaston.logging_config import get_logger
from ebaston.retry import retry_on_exception

log = get_logger(__name__)


class CompletionError(Exception):
    """Raised when a completion provider cannot return a completion."""


class _TransientError(CompletionError):
    """Connect/timeout failure worth a retry."""


class CompletionProvider(Protocol):
    name: str

    def complete(self, system_prompt: str, user_message: str, max_tokens: int = 300) -> str: ...


def _check_status(provider: str, status_code: int, body: str) -> None:
    if status_code == 401:
        raise CompletionError(f"Invalid {provider} API key.")
    if status_code == 429:
        raise CompletionError(f"{provider} rate limit exceeded. Wait and try again.")
    if status_code >= 400:
        raise CompletionError(f"{provider} API error ({status_code}): {body[:200]}")


class _HttpxProvider:
    """Shared httpx plumbing: retries on connect errors and timeouts."""

    name = "httpx"

    def __init__(
        self,
        base_url: str,
        headers: dict,
        model: str,
        timeout: float = 30.0,
        max_retries: int = 2,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.client = httpx.Client(
            headers={"Content-Type": "application/json", **headers},
            timeout=timeout,
            transport=transport,
        )
        self._post = retry_on_exception(
            max_retries=max_retries, retryable_exceptions=(_TransientError,),
        )(self._post_once)

    def _post_once(self, path: str, payload: dict) -> dict:
        try:
            response = self.client.post(f"{self.base_url}{path}", json=payload)
        except httpx.ConnectError:
            log.error("%s connection failed for model=%s", self.name, self.model)
            raise _TransientError(f"Cannot connect to {self.name}. Check your network.")
        except httpx.TimeoutException:
            log.error("%s request timed out for model=%s", self.name, self.model)
            raise _TransientError(f"{self.name} request timed out.")

        _check_status(self.name, response.status_code, response.text)
        try:
            return response.json()
        except ValueError:
            raise CompletionError(f"{self.name} returned a non-JSON body.")

    def close(self):
        self.client.close()


class OpenAICompatibleClient(_HttpxProvider):
    """Groq / OpenRouter chat completions."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        name: str = "groq",
        temperature: float = 0.3,
        **kwargs,
    ):
        if not api_key:
            raise ValueError(
                f"{name} API key required. Set {name.upper()}_API_KEY env var "
                f"or {name}.api_key in config."
            )
        self.name = name
        self.temperature = temperature
        super().__init__(base_url, {"Authorization": f"Bearer {api_key}"}, model, **kwargs)

    def complete(self, system_prompt: str, user_message: str, max_tokens: int = 300) -> str:
        data = self._post("/chat/completions", {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": self.temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
        })
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            raise CompletionError(f"{self.name} response had no choices.")


class AnthropicClient(_HttpxProvider):
    """Anthropic messages API."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.anthropic.com/v1",
        model: str = "claude-3-5-sonnet-20241022",
        version: str = "2023-06-01",
        **kwargs,
    ):
        if not api_key:
            raise ValueError(
                "Anthropic API key required. Set ANTHROPIC_API_KEY env var "
                "or anthropic.api_key in config."
            )
        super().__init__(
            base_url,
            {"x-api-key": api_key, "anthropic-version": version},
            model,
            **kwargs,
        )

    def complete(self, system_prompt: str, user_message: str, max_tokens: int = 300) -> str:
        data = self._post("/messages", {
            "model": self.model,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_message}],
        })
        for block in data.get("content") or []:
            if block.get("type") == "text":
                return block.get("text", "")
        return ""


class OllamaClient:
    """Local Ollama server, no API key."""

    name = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "gemma3",
        timeout: float = 30.0,
        max_retries: int = 2,
        temperature: float = 0.3,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self._post = retry_on_exception(
            max_retries=max_retries,
            retryable_exceptions=(requests.ConnectionError, requests.Timeout),
        )(self._post_once)

    def _post_once(self, payload: dict) -> requests.Response:
        return requests.post(f"{self.base_url}/api/chat", json=payload, timeout=self.timeout)

    def complete(self, system_prompt: str, user_message: str, max_tokens: int = 300) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "stream": False,
            "format": "json",
            "options": {"temperature": self.temperature, "num_predict": max_tokens},
        }
        try:
            response = self._post(payload)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise CompletionError(f"Cannot reach Ollama at {self.base_url}: {e}")

        _check_status(self.name, response.status_code, response.text)
        try:
            return response.json()["message"]["content"]
        except (ValueError, KeyError, TypeError):
            raise CompletionError("Ollama response had no message content.")

    def close(self):
        pass


def create_provider(config: dict) -> CompletionProvider:
    """Build the completion provider named by config["provider"]."""
    provider = config.get("provider", "groq")
    section = config.get(provider, {})
    completion = config.get("completion", {})
    common = {
        "timeout": completion.get("timeout", 30),
        "max_retries": completion.get("max_retries", 2),
    }

    if provider in ("groq", "openrouter"):
        default_url = {
            "groq": "https://api.groq.com/openai/v1",
            "openrouter": "https://openrouter.ai/api/v1",
        }[provider]
        return OpenAICompatibleClient(
            api_key=section.get("api_key", ""),
            base_url=section.get("base_url", default_url),
            model=section.get("model", "llama-3.1-8b-instant"),
            name=provider,
            temperature=completion.get("temperature", 0.3),
            **common,
        )
    if provider == "anthropic":
        return AnthropicClient(
            api_key=section.get("api_key", ""),
            base_url=section.get("base_url", "https://api.anthropic.com/v1"),
            model=section.get("model", "claude-3-5-sonnet-20241022"),
            version=section.get("version", "2023-06-01"),
            **common,
        )
    if provider == "ollama":
        return OllamaClient(
            base_url=section.get("base_url", "http://localhost:11434"),
            model=section.get("model", "gemma3"),
            temperature=completion.get("temperature", 0.3),
            **common,
        )
    raise ValueError(f"Unknown completion provider: {provider}")

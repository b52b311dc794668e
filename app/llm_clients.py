"""HTTP client for OpenAI-compatible Chat Completions endpoints (DeepSeek)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any

import requests
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

ENV_API_KEY = "DEEPSEEK_API_KEY"
ENV_BASE_URL = "DEEPSEEK_BASE_URL"

DEFAULT_BASE_URL = "https://api.deepseek.com"
DEFAULT_MODEL = "deepseek-chat"
DEFAULT_TIMEOUT = 300.0


# ---------------------------------------------------------------------------
# Token / cost tracking dataclasses
# ---------------------------------------------------------------------------


@dataclass
class LLMUsage:
    """Token usage from a single LLM call."""

    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""


@dataclass
class LLMResponse:
    """LLM response bundled with token usage.

    Callers that only need the text can use ``resp.text``.
    Cost-aware callers can inspect ``resp.usage``.
    """

    text: str
    usage: LLMUsage = field(default_factory=LLMUsage)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ChatCompletionsClient:
    """Client for a Chat Completions API.

    A single POST per call. Timeouts, connection failures and non-2xx
    responses surface as ``requests.RequestException``; retrying is the
    caller's job.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._timeout = timeout

    @property
    def model(self) -> str:
        return self._model

    def generate_text(
        self,
        prompt: str,
        *,
        temperature: float = 0.7,
        system_prompt: str | None = None,
        response_mime_type: str | None = None,
    ) -> LLMResponse:
        """Call Chat Completions API, return ``LLMResponse(text, usage)``."""
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        data: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": temperature,
        }

        # --- JSON mode ---
        if response_mime_type == "application/json":
            data["response_format"] = {"type": "json_object"}

        body = self._post(data)

        try:
            text = body["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            msg = f"Unexpected completions payload: {str(body)[:200]}"
            raise requests.exceptions.InvalidJSONError(msg) from exc

        usage = LLMUsage(model=self._model)
        raw_usage = body.get("usage")
        if raw_usage:
            usage.input_tokens = raw_usage.get("prompt_tokens", 0)
            usage.output_tokens = raw_usage.get("completion_tokens", 0)

        return LLMResponse(text=text, usage=usage)

    def _post(self, data: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        resp = requests.post(
            self._url, headers=headers, json=data, timeout=self._timeout,
        )
        if resp.status_code >= 400:
            _logger.warning(
                "Completions HTTP %d: %s", resp.status_code, resp.text[:200],
            )
        resp.raise_for_status()
        return resp.json()


def load_default_chat_client(
    model: str = DEFAULT_MODEL,
    timeout: float = DEFAULT_TIMEOUT,
) -> ChatCompletionsClient:
    """Construct a ``ChatCompletionsClient`` from ``DEEPSEEK_*`` env vars."""
    load_dotenv()
    api_key = os.getenv(ENV_API_KEY)
    if not api_key:
        raise RuntimeError(f"{ENV_API_KEY} is required.")
    base_url = os.getenv(ENV_BASE_URL) or DEFAULT_BASE_URL
    return ChatCompletionsClient(
        api_key=api_key, model=model, base_url=base_url, timeout=timeout,
    )

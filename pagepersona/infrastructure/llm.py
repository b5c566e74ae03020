"""Chat-completions client used by the llm stage."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from pagepersona.core.errors import StageTimeout, TransformFailed
from pagepersona.core.prompts import PromptComponents

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CompletionResult:
    content: str
    usage: dict[str, int] = field(default_factory=dict)
    finish_reason: str | None = None


class OpenAIChatClient:
    """Minimal client for the OpenAI chat-completions HTTP API."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-4o",
        api_base: str = "https://api.openai.com/v1",
        max_tokens: int = 2500,
        temperature: float = 0.7,
        presence_penalty: float = 0.1,
        frequency_penalty: float = 0.1,
        timeout: float = 60.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_url = f"{api_base.rstrip('/')}/chat/completions"
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._presence_penalty = presence_penalty
        self._frequency_penalty = frequency_penalty
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _build_payload(self, prompt: PromptComponents) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": prompt.system_prompt},
                {"role": "user", "content": prompt.user_prompt},
            ],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "presence_penalty": self._presence_penalty,
            "frequency_penalty": self._frequency_penalty,
        }

    @staticmethod
    def _parse_usage(payload: dict[str, Any]) -> dict[str, int]:
        usage = payload.get("usage") or {}
        return {
            key: int(usage.get(key) or 0)
            for key in ("prompt_tokens", "completion_tokens", "total_tokens")
        }

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def complete(self, prompt: PromptComponents) -> CompletionResult:
        if not self._api_key:
            raise TransformFailed("OpenAI API key not configured")

        logger.info(
            "Requesting completion model=%s prompt_chars=%d est_tokens=%d",
            self._model,
            prompt.total_length,
            prompt.estimated_tokens,
        )
        try:
            response = self._client.post(
                self._request_url,
                json=self._build_payload(prompt),
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise StageTimeout("Language model request timed out") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 429:
                raise TransformFailed("Language model rate limit reached") from exc
            raise TransformFailed(f"Language model request failed with HTTP {status}") from exc
        except httpx.HTTPError as exc:
            raise TransformFailed(f"Language model request failed: {exc}") from exc

        payload = response.json()
        choices = payload.get("choices") or []
        if not choices:
            raise TransformFailed("No response from the language model")

        first = choices[0] or {}
        content = ((first.get("message") or {}).get("content") or "").strip()
        if not content:
            raise TransformFailed("Language model returned empty content")

        usage = self._parse_usage(payload)
        logger.info("Completion received total_tokens=%d", usage["total_tokens"])
        return CompletionResult(content=content, usage=usage, finish_reason=first.get("finish_reason"))

    def close(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            self._client.close()


__all__ = ["CompletionResult", "OpenAIChatClient"]

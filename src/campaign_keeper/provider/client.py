"""OpenAI-compatible chat completion client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from ..errors import MalformedOutputError, ProviderError
from ..config import LLMConfig
from .protocol import build_messages


@dataclass
class CompletionResult:
    content: str
    total_tokens: int = 0
    model: str = ""


class CompletionProvider(Protocol):
    async def complete(self, state: dict[str, Any], player_input: str) -> CompletionResult: ...


class OpenAIChatProvider:
    """Single-shot chat completion. No retry: any failure ends the turn."""

    def __init__(
        self,
        config: LLMConfig,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.api_key = api_key if api_key is not None else os.getenv(config.api_key_env, "")
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.config.api_base.rstrip('/')}/chat/completions"

    async def complete(self, state: dict[str, Any], player_input: str) -> CompletionResult:
        if not self.api_key:
            raise ProviderError(f"missing API key (set {self.config.api_key_env})")

        payload = {
            "model": self.config.model,
            "messages": build_messages(state, player_input),
            "temperature": self.config.temperature,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"completion request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"completion request failed: {exc}") from exc

        if not response.is_success:
            raise ProviderError(
                f"completion API returned {response.status_code}",
                status_code=response.status_code,
                detail=response.text,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedOutputError("completion API returned non-JSON body", raw=response.text) from exc
        return _result_from_payload(data, fallback_model=self.config.model)


def _result_from_payload(data: Any, *, fallback_model: str) -> CompletionResult:
    if not isinstance(data, dict):
        raise MalformedOutputError("completion payload must be a JSON object", raw=str(data))
    choices = data.get("choices") or []
    message = choices[0].get("message") if choices and isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str):
        raise MalformedOutputError("completion payload has no message content", raw=str(data))

    usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
    tokens = usage.get("total_tokens") or 0
    if isinstance(tokens, bool) or not isinstance(tokens, (int, float)) or tokens < 0:
        tokens = 0
    return CompletionResult(
        content=content,
        total_tokens=int(tokens),
        model=str(data.get("model") or fallback_model),
    )

"""Thin async wrapper around the OpenAI chat completions API."""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Sequence

from openai import AsyncOpenAI, OpenAIError

from core.errors import ClassificationUnavailable


class ChatModel(Protocol):
    async def complete(
        self,
        prompt: str,
        history: Sequence[Dict[str, str]] = (),
        *,
        system: Optional[str] = None,
        temperature: float = 0.1,
    ) -> str:
        ...


class OpenAIChatModel:
    """Chat model backed by ``AsyncOpenAI``; raises ``ClassificationUnavailable`` on any failure."""

    def __init__(
        self,
        model: str,
        api_key: str | None,
        *,
        timeout: float = 15.0,
        max_tokens: int = 600,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._client = client
        if self._client is None and api_key:
            self._client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        prompt: str,
        history: Sequence[Dict[str, str]] = (),
        *,
        system: Optional[str] = None,
        temperature: float = 0.1,
    ) -> str:
        if self._client is None:
            raise ClassificationUnavailable("Model service is not configured (missing OPENAI_API_KEY).")

        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend({"role": item["role"], "content": item["content"]} for item in history)
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=self._max_tokens,
            )
        except OpenAIError as exc:
            raise ClassificationUnavailable(f"Model request failed: {exc}") from exc

        if not response.choices:
            raise ClassificationUnavailable("Model returned no choices.")
        content = getattr(response.choices[0].message, "content", None)
        if not content:
            raise ClassificationUnavailable("Model returned an empty message.")
        return content


__all__ = ["ChatModel", "OpenAIChatModel"]

"""OpenAI-backed text generation capability."""

from __future__ import annotations

from typing import Any

from openai import AsyncOpenAI

from .config import DEFAULT_MODEL

SYSTEM_PROMPT = (
    "You are a media research assistant. You write web search queries that help "
    "find journalists, editors and other media contacts. Answer with a numbered "
    "list only."
)


class OpenAITextGenerator:
    """Chat-completions wrapper that returns the first choice's text.

    The client is created on first use so that commands which never call the
    model do not need an API key.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.3,
        client: Any | None = None,
    ) -> None:
        self._api_key = api_key
        self._client = client
        self._model = model
        self._temperature = temperature

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def generate(self, prompt: str) -> str:
        response = await self._get_client().chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=self._temperature,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

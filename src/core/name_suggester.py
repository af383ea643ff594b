from __future__ import annotations

from typing import Any, Optional

import httpx

from src.config import settings
from src.utils.exceptions import SuggestionError
from src.utils.logger import logger

NAME_PROMPT = (
    "You are a creative pet naming expert. Based on the pet photo and user "
    "preferences, suggest {count} unique, memorable pet names in {language}. "
    "Format as a numbered list with brief, engaging explanations for each name."
)


def caption_text(output: Any) -> str:
    """Flatten a caption result such as ``{"<CAPTION>": "a dog"}`` to text."""
    if isinstance(output, str):
        return output.strip()
    if isinstance(output, dict):
        texts = [v.strip() for v in output.values() if isinstance(v, str)]
        return "\n".join(t for t in texts if t)
    return ""


class NameSuggester:
    """Turns an image caption into name suggestions via a text-generation API."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.text_generation_timeout)
        return self._client

    def build_prompt(self, caption: str, language: str) -> str:
        prompt = NAME_PROMPT.format(count=settings.suggestion_count, language=language)
        if caption:
            prompt += f"\n\nPhoto description: {caption}"
        return prompt

    async def suggest(self, caption: str, language: str, seed: Optional[int] = None) -> str:
        payload = {
            "model": settings.text_generation_model,
            "messages": [{"role": "user", "content": self.build_prompt(caption, language)}],
        }
        if seed is not None:
            payload["seed"] = seed

        try:
            response = await self._get_client().post(settings.text_generation_url, json=payload)
            response.raise_for_status()
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except httpx.HTTPError as e:
            logger.error(f"Text generation request failed: {e}")
            raise SuggestionError(str(e)) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise SuggestionError(f"unexpected response shape: {e}") from e

        if not content:
            raise SuggestionError("empty response")
        return content.strip()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

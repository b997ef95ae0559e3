import logging
from collections.abc import Sequence
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class HttpCompletionBackend:
    """OpenAI-compatible ``/chat/completions`` client over a shared httpx client."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: str | None,
        model: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        messages: Sequence[dict[str, str]],
        max_tokens: int,
        temperature: float,
        presence_penalty: float,
        frequency_penalty: float,
    ) -> str | None:
        if not self.is_configured:
            logger.debug("Completion API key is not configured; skipping request")
            return None

        body: dict[str, Any] = {
            "model": self.model,
            "messages": list(messages),
            "max_tokens": max_tokens,
            "temperature": temperature,
            "presence_penalty": presence_penalty,
            "frequency_penalty": frequency_penalty,
        }
        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=body,
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.warning("Completion request failed: %s", exc)
            return None

        if response.status_code >= 300:
            logger.warning(
                "Completion request returned HTTP %s: %s",
                response.status_code,
                response.text[:200],
            )
            return None

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            logger.warning("Completion response had an unexpected shape")
            return None
        return content if isinstance(content, str) else None

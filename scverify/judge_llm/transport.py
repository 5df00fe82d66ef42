"""Chat-completion transports for the judge."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import openai

from scverify.config.settings import JudgeConfig
from scverify.errors import JudgeTransportError

logger = logging.getLogger(__name__)


class ChatTransport(Protocol):
    def complete(self, request: Dict[str, Any], timeout: Optional[float] = None) -> str:
        """Send one chat request and return the first choice's content."""
        ...


class OpenAIChatTransport:
    """OpenAI (or compatible) chat completions; SDK retries are off."""

    def __init__(self, config: JudgeConfig, client: Optional[openai.OpenAI] = None) -> None:
        if client is None:
            api_key = config.api_key.get_secret_value() if config.api_key else None
            if not api_key:
                raise ValueError("JudgeConfig.api_key is required for the OpenAI transport")
            client = openai.OpenAI(
                api_key=api_key,
                base_url=config.base_url,
                timeout=config.request_timeout,
                max_retries=0,
            )
        self._client = client

    def complete(self, request: Dict[str, Any], timeout: Optional[float] = None) -> str:
        options: Dict[str, Any] = {"timeout": timeout} if timeout is not None else {}
        try:
            response = self._client.chat.completions.create(**request, **options)
        except openai.APIStatusError as exc:
            raise JudgeTransportError(
                f"judge returned HTTP {exc.status_code}: {exc.message}", status_code=exc.status_code
            ) from exc
        except openai.APIError as exc:
            raise JudgeTransportError(f"judge request failed: {exc}") from exc

        if not response.choices:
            raise JudgeTransportError("judge response contained no choices")
        return response.choices[0].message.content or ""

    def close(self) -> None:
        self._client.close()


__all__ = ["ChatTransport", "OpenAIChatTransport"]


"""LLM judge client: one deterministic chat request per finding."""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from scverify.config.settings import JudgeConfig
from scverify.errors import JudgeFailure, JudgeTransportError
from scverify.judge_llm.prompts import build_messages
from scverify.judge_llm.retry import RetryExhausted, make_backoff, retry_call
from scverify.judge_llm.transport import ChatTransport, OpenAIChatTransport
from scverify.orchestrator.cancel import CancelToken
from scverify.schema.models import Finding, Judgment, JudgeVerdict

logger = logging.getLogger(__name__)

TEMPERATURE = 0
TOP_P = 0
RESPONSE_FORMAT = {"type": "json_object"}


class ResponseNotJSON(ValueError):
    """Judge content is not a JSON object; retried like a transport error."""

    def __init__(self, message: str, content: str) -> None:
        super().__init__(message)
        self.content = content


class JudgeClient:
    """Stateless apart from its configuration and transport."""

    def __init__(
        self,
        config: JudgeConfig,
        transport: Optional[ChatTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.transport = transport if transport is not None else OpenAIChatTransport(config)
        self._sleep = sleep
        self._backoff = make_backoff(config.backoff, config.backoff_base)

    def build_request(self, finding: Finding, source_code: str) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "temperature": TEMPERATURE,
            "top_p": TOP_P,
            "seed": self.config.seed,
            "max_tokens": self.config.max_tokens,
            "response_format": dict(RESPONSE_FORMAT),
            "messages": build_messages(finding.judge_payload(), source_code),
        }

    def judge(
        self,
        finding: Finding,
        source_code: str,
        cancel: Optional[CancelToken] = None,
    ) -> Judgment:
        """Ask the judge about ``finding``; raises ``JudgeFailure``.

        With a ``cancel`` token, backoff waits end on cancellation and each
        request's timeout is capped by the token's remaining time.
        """

        request = self.build_request(finding, source_code)
        sleep = cancel.sleep if cancel is not None else self._sleep
        attempts = 0

        def _attempt() -> Tuple[str, Dict[str, Any]]:
            nonlocal attempts
            if cancel is not None:
                cancel.raise_if_cancelled()
            attempts += 1
            content = self.transport.complete(request, timeout=self._request_timeout(cancel))
            return content, _decode_object(content)

        def _log_retry(attempt: int, exc: BaseException, delay: float) -> None:
            logger.warning(
                "Judge call for %s failed (attempt %d/%d): %s; retrying in %.1fs",
                finding.check_id,
                attempt,
                self.config.max_attempts,
                exc,
                delay,
            )

        try:
            content, payload = retry_call(
                _attempt,
                max_attempts=self.config.max_attempts,
                backoff=self._backoff,
                retry_on=(JudgeTransportError, ResponseNotJSON),
                sleep=sleep,
                on_retry=_log_retry,
            )
        except RetryExhausted as exc:
            last = exc.last_error
            raise JudgeFailure(
                JudgeFailure.EXHAUSTED_RETRIES,
                f"judge call failed after {exc.attempts} attempt(s): {last}",
                attempts=exc.attempts,
                raw_response=last.content if isinstance(last, ResponseNotJSON) else None,
            ) from exc

        try:
            verdict = JudgeVerdict.model_validate(payload)
        except ValidationError as exc:
            raise JudgeFailure(
                JudgeFailure.MALFORMED_RESPONSE,
                f"judge response lacks a valid verdict: {exc.errors(include_url=False)}",
                attempts=attempts,
                raw_response=content,
            ) from exc

        return Judgment(
            is_real_vulnerability=verdict.is_real_vulnerability,
            confidence=verdict.confidence,
            rationale=verdict.rationale,
            raw_response=content,
        )

    def _request_timeout(self, cancel: Optional[CancelToken]) -> float:
        timeout = self.config.request_timeout
        remaining = cancel.remaining() if cancel is not None else None
        if remaining is not None and remaining < timeout:
            return remaining
        return timeout

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()


def _decode_object(content: str) -> Dict[str, Any]:
    try:
        payload = json.loads(content)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ResponseNotJSON(f"judge response is not JSON: {exc}", content) from exc
    if not isinstance(payload, dict):
        raise ResponseNotJSON("judge response is not a JSON object", content)
    return payload


__all__ = ["JudgeClient", "ResponseNotJSON", "TEMPERATURE", "TOP_P"]

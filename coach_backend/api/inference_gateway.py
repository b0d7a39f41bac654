"""
Inference Gateway: Timeout • Retry • Typed Failures
===================================================

Purpose
-------
Single outbound path to the external LLM endpoint. `infer(prompt)` sends one
text prompt to the configured chat model and returns the reply text.

Policy
------
- Every attempt is bounded by `timeout_ms` (the in-flight request is
  abandoned, not cancelled remotely).
- Timeouts, connection errors, rate limits and 5xx answers are retried up to
  `max_retries` times, sleeping `backoff_ms * attempt` between attempts.
- When every attempt failed: `InferenceUnavailable`, or its subclass
  `InferenceTimeout` when the last attempt timed out.
- Other HTTP errors (4xx) and client configuration errors are final on the
  first attempt: `InferenceUnavailable` without retry.
- Empty or non-text replies: `InferenceMalformedResponse`, never retried.

Configuration (settings)
------------------------
- settings.API_KEY / settings.OPEN_AI_MODEL / settings.INFERENCE_BASE_URL
- settings.INFERENCE_TIMEOUT_MS / settings.INFERENCE_MAX_RETRIES / settings.INFERENCE_BACKOFF_MS
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import openai
from langchain_openai import ChatOpenAI

from coach_backend.database.config.config import settings
from coach_backend.database.core.errors import (
    InferenceMalformedResponse,
    InferenceTimeout,
    InferenceUnavailable,
)

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (
    openai.APIConnectionError,  # includes APITimeoutError
    openai.RateLimitError,
    openai.InternalServerError,
)


def build_chat_model() -> ChatOpenAI:
    """Chat model for the configured endpoint; retries are handled by the gateway."""
    return ChatOpenAI(
        model=settings.OPEN_AI_MODEL,
        api_key=settings.API_KEY,
        base_url=settings.INFERENCE_BASE_URL,
        temperature=settings.INFERENCE_TEMPERATURE,
        timeout=settings.INFERENCE_TIMEOUT_MS / 1000,
        max_retries=0,
    )


def lc_text_from_content(content: Any) -> str:
    """Normalize LangChain message content to plain text.

    - If string → return as-is.
    - If list of content parts → concatenates only 'text' parts.
    - Else → malformed.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            p if isinstance(p, str) else p.get("text", "")
            for p in content
            if isinstance(p, str) or (isinstance(p, dict) and p.get("type") == "text")
        )
    raise InferenceMalformedResponse(f"unexpected response content of type {type(content).__name__}")


class InferenceGateway:
    """
    Issues inference calls with bounded timeout and retries.

    Args:
        model: Object exposing `async ainvoke(prompt)` (LangChain chat model);
            built from settings on first use when omitted.
        timeout_ms (int | None): Per-attempt timeout.
        max_retries (int | None): Retries after the first attempt.
        backoff_ms (int | None): Base delay between retries.
        sleep: Coroutine used to wait between retries.
    """

    def __init__(
        self,
        model: Any = None,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._model = model
        self.timeout_ms = settings.INFERENCE_TIMEOUT_MS if timeout_ms is None else timeout_ms
        self.max_retries = settings.INFERENCE_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_ms = settings.INFERENCE_BACKOFF_MS if backoff_ms is None else backoff_ms
        self._sleep = sleep

    @property
    def model(self):
        if self._model is None:
            self._model = build_chat_model()
        return self._model

    async def infer(self, prompt: str) -> str:
        """
        Send `prompt` and return the reply text.

        Raises:
            InferenceUnavailable: every attempt failed (InferenceTimeout if the last one timed out).
            InferenceMalformedResponse: the endpoint replied with empty or unusable content.
        """
        attempts = self.max_retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                response = await asyncio.wait_for(self.model.ainvoke(prompt), timeout=self.timeout_ms / 1000)
            except (asyncio.TimeoutError, openai.APITimeoutError) as e:
                last_error = e
                logger.warning("Inference attempt %d/%d timed out after %d ms", attempt, attempts, self.timeout_ms)
            except RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning("Inference attempt %d/%d failed: %s", attempt, attempts, e)
            except openai.APIStatusError as e:
                logger.error("Inference endpoint refused the request: %s", e)
                raise InferenceUnavailable(f"inference endpoint returned status {e.status_code}") from e
            except openai.OpenAIError as e:
                # client misconfiguration (e.g. missing API key)
                logger.error("Inference client error: %s", e)
                raise InferenceUnavailable(str(e)) from e
            else:
                return self._reply_text(response)

            if attempt < attempts:
                await self._sleep(self.backoff_ms * attempt / 1000)

        if isinstance(last_error, (asyncio.TimeoutError, openai.APITimeoutError)):
            raise InferenceTimeout(f"inference timed out on all {attempts} attempts") from last_error
        raise InferenceUnavailable(f"inference failed on all {attempts} attempts: {last_error}") from last_error

    @staticmethod
    def _reply_text(response: Any) -> str:
        if response is None:
            raise InferenceMalformedResponse("empty response from inference endpoint")
        content = getattr(response, "content", response)
        text = lc_text_from_content(content)
        if not text.strip():
            raise InferenceMalformedResponse("empty response from inference endpoint")
        return text

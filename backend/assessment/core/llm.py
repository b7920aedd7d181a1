"""
Generative service client.

Wraps the Groq chat-completions endpoint behind a single ``call()`` that
returns raw text. Upstream failures are classified as transient (retried) or
permanent (surfaced immediately). The SDK's own retry loop is disabled so the
retry budget here is the only one in play.
"""

import logging
import threading
from typing import Any, Optional

from groq import APIConnectionError, APIError, APIStatusError, Groq
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .config import Settings, get_settings
from .errors import (
    PermanentUpstreamError,
    ProcessingFailed,
    TransientUpstreamError,
    UpstreamError,
)
from ..schemas.tasks import GenerationParams

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


def classify_upstream_error(exc: Exception) -> UpstreamError:
    """Map an SDK exception onto the transient/permanent taxonomy."""
    if isinstance(exc, APIConnectionError):
        # Covers APITimeoutError as well
        return TransientUpstreamError(
            f"Could not reach the AI service: {exc}", cause=type(exc).__name__
        )
    if isinstance(exc, APIStatusError):
        status = exc.status_code
        if status in TRANSIENT_STATUS_CODES:
            return TransientUpstreamError(
                f"AI service temporarily unavailable (HTTP {status})", status_code=status
            )
        return PermanentUpstreamError(
            f"AI service rejected the request (HTTP {status})", status_code=status
        )
    return PermanentUpstreamError(f"Unexpected AI service error: {exc}")


class GenerativeClient:
    """
    Sends one prompt to the generative service and returns its text.

    Args:
        sdk_client: Pre-built Groq-compatible client. Built lazily from
            settings when omitted.
        settings: Settings snapshot; defaults to :func:`get_settings`.
        max_attempts: Total attempts for transient failures.
        retry_delay: Fixed delay in seconds between attempts.
        timeout: Overall deadline in seconds for one upstream call.

    Example:
        >>> client = GenerativeClient()
        >>> text = client.call("Say hello", GenerationParams(max_length=16))
    """

    def __init__(
        self,
        sdk_client: Optional[Any] = None,
        settings: Optional[Settings] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.settings = settings or get_settings()
        self.model = self.settings.LLM_MODEL
        self.max_attempts = max_attempts or self.settings.LLM_MAX_ATTEMPTS
        self.retry_delay = (
            self.settings.LLM_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        )
        self.timeout = timeout or self.settings.LLM_TIMEOUT_SECONDS
        self._sdk = sdk_client
        self._sdk_lock = threading.Lock()

    def _get_sdk(self) -> Any:
        """Lazy initialization of the Groq client."""
        with self._sdk_lock:
            if self._sdk is None:
                api_key = self.settings.GROQ_API_KEY
                if api_key is None or not api_key.get_secret_value():
                    raise PermanentUpstreamError(
                        "GROQ_API_KEY environment variable is not set"
                    )
                self._sdk = Groq(
                    api_key=api_key.get_secret_value(),
                    timeout=self.timeout,
                    max_retries=0,
                )
            return self._sdk

    def call(
        self,
        prompt: str,
        params: Optional[GenerationParams] = None,
        system: Optional[str] = None,
    ) -> str:
        """
        Send ``prompt`` and return the generated text ("" when the reply is empty).

        Raises:
            PermanentUpstreamError: non-transient failure, not retried.
            ProcessingFailed: transient failures outlasted ``max_attempts``.
        """
        params = params or GenerationParams()
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(TransientUpstreamError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            return retrying(self._call_once, prompt, params, system)
        except TransientUpstreamError as exc:
            logger.error(
                "AI service call failed after %d attempts: %s", self.max_attempts, exc
            )
            raise ProcessingFailed(attempts=self.max_attempts, cause=exc.message) from exc

    def _call_once(
        self, prompt: str, params: GenerationParams, system: Optional[str]
    ) -> str:
        sdk = self._get_sdk()

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        logger.info(
            "Calling %s (max_tokens=%d, temperature=%.2f)",
            self.model, params.max_length, params.temperature,
        )
        try:
            response = sdk.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=params.max_length,
                temperature=params.temperature,
                top_p=params.top_p,
                timeout=self.timeout,
            )
        except APIError as exc:
            error = classify_upstream_error(exc)
            logger.warning("AI service call failed: %s", error.message)
            raise error from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

"""
Completion client for the analysis prompts.

Two interchangeable providers are supported, both reached through their
OpenAI-compatible chat completion endpoints with the ``openai`` SDK:

- ``glm``: ZhipuAI (``ZHIPUAI_API_KEY``)
- ``claude``: Anthropic (``ANTHROPIC_API_KEY``)

Every call runs inside an exponential-backoff retry loop that only retries
transient failures (rate limiting, overload, 5xx, network errors).
"""

from __future__ import annotations

import errno
import logging
import os
import random
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

import openai
from openai import OpenAI

from paper_insight_pipeline.config import (
    ANTHROPIC_API_KEY,
    CLAUDE_BASE_URL,
    CLAUDE_DEEP_MODEL,
    CLAUDE_QUICK_MODEL,
    GLM_BASE_URL,
    GLM_DEEP_MODEL,
    GLM_QUICK_MODEL,
    LLM_MAX_ATTEMPTS,
    LLM_PROVIDER,
    LLM_REQUEST_TIMEOUT,
    LLM_RETRY_INITIAL_DELAY,
    LLM_RETRY_MAX_DELAY,
    ZHIPUAI_API_KEY,
)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)
RETRYABLE_ERROR_CODES = ("ECONNRESET", "ETIMEDOUT", "ENOTFOUND", "EAI_AGAIN")
RETRYABLE_MESSAGE_PATTERNS = (
    "rate limit",
    "rate_limit",
    "too many requests",
    "quota exceeded",
    "overloaded",
    "temporarily unavailable",
    "temporary unavailable",
    "timeout",
    "service unavailable",
)

# SDK exception types that are always transient
OPENAI_TRANSIENT_ERRORS = tuple(
    exc
    for exc in [
        getattr(openai, "RateLimitError", None),
        getattr(openai, "APIConnectionError", None),
        getattr(openai, "APITimeoutError", None),
        getattr(openai, "InternalServerError", None),
    ]
    if exc is not None
)


class CompletionError(Exception):
    """A completion call failed permanently or exhausted its retries."""


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = LLM_MAX_ATTEMPTS
    initial_delay: float = LLM_RETRY_INITIAL_DELAY
    max_delay: float = LLM_RETRY_MAX_DELAY
    jitter: float = 0.25


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    base_url: str
    api_key: str
    api_key_env: str
    quick_model: str
    deep_model: str


def get_provider_config(name: Optional[str] = None) -> ProviderConfig:
    """Resolve a provider by name (defaults to ``LLM_PROVIDER``)."""
    name = (name or LLM_PROVIDER or "glm").strip().lower()
    providers: Dict[str, ProviderConfig] = {
        "glm": ProviderConfig(
            name="glm",
            base_url=GLM_BASE_URL,
            api_key=ZHIPUAI_API_KEY,
            api_key_env="ZHIPUAI_API_KEY",
            quick_model=GLM_QUICK_MODEL,
            deep_model=GLM_DEEP_MODEL,
        ),
        "claude": ProviderConfig(
            name="claude",
            base_url=CLAUDE_BASE_URL,
            api_key=ANTHROPIC_API_KEY,
            api_key_env="ANTHROPIC_API_KEY",
            quick_model=CLAUDE_QUICK_MODEL,
            deep_model=CLAUDE_DEEP_MODEL,
        ),
    }
    if name not in providers:
        raise ValueError(f"Unknown LLM provider: {name!r} (expected one of {sorted(providers)})")
    return providers[name]


def calculate_retry_delay(
    attempt: int,
    policy: RetryPolicy = RetryPolicy(),
    rng: Callable[[], float] = random.random,
) -> float:
    """
    Backoff delay in seconds for a zero-based attempt number.

    ``min(initial * 2**attempt, max)`` with +/- jitter, never below ``initial``.
    """
    exponential = min(policy.initial_delay * (2 ** attempt), policy.max_delay)
    jitter = exponential * policy.jitter * (rng() * 2 - 1)
    return max(exponential + jitter, policy.initial_delay)


def _status_code(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _error_code(error: BaseException) -> Optional[str]:
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code.upper()
    err_no = getattr(error, "errno", None)
    if isinstance(err_no, int):
        return errno.errorcode.get(err_no)
    return None


def is_retryable_error(error: BaseException) -> bool:
    """
    Classify a failure as transient.

    Checks, in order: SDK transient types, HTTP status, network error code,
    built-in timeout/connection errors, then known message patterns. The
    cause chain is inspected too, since SDKs wrap socket errors.
    """
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if OPENAI_TRANSIENT_ERRORS and isinstance(current, OPENAI_TRANSIENT_ERRORS):
            return True
        status = _status_code(current)
        if status in RETRYABLE_STATUS_CODES:
            return True
        if _error_code(current) in RETRYABLE_ERROR_CODES:
            return True
        if isinstance(current, (TimeoutError, ConnectionError)):
            return True
        message = str(current).lower()
        if any(pattern in message for pattern in RETRYABLE_MESSAGE_PATTERNS):
            return True
        current = current.__cause__ or current.__context__
    return False


def with_retry(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy = RetryPolicy(),
    call_context: str = "completion",
    logger: Optional[logging.Logger] = None,
) -> T:
    """
    Run ``fn`` until it succeeds, a non-retryable error occurs, or the policy's
    attempts are exhausted.

    Raises:
        CompletionError: chained to the underlying exception.
    """
    log = logger or logging.getLogger(__name__)
    last_error: Optional[BaseException] = None

    for attempt in range(policy.max_attempts):
        try:
            return fn()
        except Exception as e:
            last_error = e
            if not is_retryable_error(e):
                log.error("%s: non-retryable error: %s", call_context, e)
                raise CompletionError(f"{call_context} failed: {e}") from e

            status = _status_code(e) or "unknown"
            if attempt < policy.max_attempts - 1:
                delay = calculate_retry_delay(attempt, policy)
                log.warning(
                    "%s: transient error (attempt %d/%d, status=%s): %s; retrying in %.1fs",
                    call_context, attempt + 1, policy.max_attempts, status, e, delay,
                )
                time.sleep(delay)
            else:
                log.error(
                    "%s: failed after %d attempts (status=%s): %s",
                    call_context, policy.max_attempts, status, e,
                )

    raise CompletionError(
        f"{call_context} failed after {policy.max_attempts} attempts: {last_error}"
    ) from last_error


class CompletionClient:
    """
    Chat-completion client bound to one provider.

    The underlying SDK client is created lazily so importing this module (or
    constructing the client in tests) never requires credentials.
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
        client: Optional[OpenAI] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = get_provider_config(provider)
        self._api_key = api_key
        self.policy = policy or RetryPolicy()
        self._client = client
        self.logger = logger or logging.getLogger(__name__)

    @property
    def provider(self) -> str:
        return self.config.name

    @property
    def quick_model(self) -> str:
        return self.config.quick_model

    @property
    def deep_model(self) -> str:
        return self.config.deep_model

    def _get_client(self) -> OpenAI:
        if self._client is None:
            api_key = self._api_key or self.config.api_key or os.getenv(self.config.api_key_env)
            if not api_key:
                raise CompletionError(f"{self.config.api_key_env} is not set in the environment.")
            # Retries are handled by with_retry, not the SDK
            self._client = OpenAI(
                api_key=api_key,
                base_url=self.config.base_url,
                timeout=LLM_REQUEST_TIMEOUT,
                max_retries=0,
            )
        return self._client

    def generate(
        self,
        messages: List[Dict[str, str]],
        *,
        model: Optional[str] = None,
        max_tokens: int = 4000,
        temperature: float = 0.1,
    ) -> str:
        """
        Send a chat completion request and return the raw text output.

        Args:
            messages: [{"role": "system"|"user"|"assistant", "content": ...}]
            model: Model name; defaults to the provider's quick model
            max_tokens: Output token cap
            temperature: Sampling temperature

        Returns:
            Text of the first choice ("" when the provider returned no content)

        Raises:
            CompletionError: permanent failure or retries exhausted
        """
        model = model or self.quick_model
        client = self._get_client()
        call_context = f"{self.provider}:{model}"

        def _call() -> Tuple[str, Optional[str]]:
            resp = client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
            choice = resp.choices[0] if resp.choices else None
            content = getattr(getattr(choice, "message", None), "content", None) or ""
            return content, getattr(choice, "finish_reason", None)

        content, finish_reason = with_retry(
            _call, policy=self.policy, call_context=call_context, logger=self.logger
        )
        if finish_reason == "length":
            self.logger.warning("%s: output hit max_tokens=%d; response may be truncated", call_context, max_tokens)
        if not content:
            self.logger.warning("%s: empty completion", call_context)
        return content


def create_llm_client(provider: Optional[str] = None, **kwargs) -> CompletionClient:
    """Factory used by the orchestrator; reads provider defaults from config."""
    return CompletionClient(provider, **kwargs)

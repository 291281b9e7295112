# mealplan/services/provider_gateway.py
import re
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Dict, List, Optional

import openai

from mealplan.logging_utils import get_logger
from mealplan.services.circuit_breaker import CircuitBreakerState
from mealplan.services.errors import (
    CircuitOpen,
    MealPlanError,
    ProviderError,
    ProviderNotConfigured,
    ProviderTimeout,
    RateLimited,
)

logger = get_logger(__name__)

RATE_LIMIT_PATTERN = re.compile(r"rate limit|too many requests", re.IGNORECASE)


def error_status(exc: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_rate_limit_error(exc: BaseException) -> bool:
    if isinstance(exc, openai.RateLimitError) or error_status(exc) == 429:
        return True
    return bool(RATE_LIMIT_PATTERN.search(str(exc) or ""))


class ProviderGateway:
    """
    Single entry point to the text-model provider.

    Enforces the cooldown, bounds every call with a timeout and turns provider
    failures into engine errors. It never retries.
    """

    def __init__(
        self,
        client,
        breaker: CircuitBreakerState,
        model: str,
        executor: Optional[ThreadPoolExecutor] = None,
        max_workers: int = 8,
        grace_seconds: float = 2.0,
    ):
        self.client = client
        self.breaker = breaker
        self.model = model
        self.grace_seconds = grace_seconds
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="llm-provider"
        )

    def assert_available(self, operation: str) -> None:
        seconds = self.breaker.retry_after()
        if seconds > 0:
            raise CircuitOpen(
                f"AI {operation} temporarily unavailable. Retrying after cooldown ({seconds}s).",
                retry_after=seconds,
            )
        if self.client is None:
            raise ProviderNotConfigured("LLM API key is not configured")

    def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        timeout_s: float,
        operation: str,
        temperature: float = 0.3,
    ) -> str:
        """Run one JSON-mode chat completion and return the raw message content."""
        self.assert_available(operation)

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        start = time.monotonic()
        future = self._executor.submit(self._create, messages, timeout_s, temperature)
        try:
            response = future.result(timeout=timeout_s + self.grace_seconds)
        except FuturesTimeoutError:
            # The worker keeps running; its result is discarded.
            future.cancel()
            logger.error("Provider call for %s timed out after %.1fs", operation, timeout_s)
            raise ProviderTimeout(f"Timeout while waiting for {operation}")
        except Exception as exc:
            raise self.classify(exc, operation) from exc

        elapsed_ms = int((time.monotonic() - start) * 1000)
        content = self._content_of(response)
        logger.info(
            "Provider response for %s: model=%s elapsed=%dms finish_reason=%s",
            operation, getattr(response, "model", self.model), elapsed_ms, self._finish_reason(response),
        )
        if not content:
            raise ProviderError(f"Empty response from LLM for {operation}")
        return content

    def classify(self, exc: BaseException, operation: str = "provider call") -> MealPlanError:
        if isinstance(exc, MealPlanError):
            return exc
        if isinstance(exc, openai.APITimeoutError):
            return ProviderTimeout(f"Timeout while waiting for {operation}")

        message = str(exc) or exc.__class__.__name__
        if is_rate_limit_error(exc):
            self.breaker.trip(message)
            return RateLimited(message)

        status = error_status(exc)
        logger.error("Provider call for %s failed (status=%s): %s", operation, status, message)
        if status and 400 <= status < 600:
            return ProviderError(message, status_code=status)
        return ProviderError(message)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)

    # ---------- helpers ----------

    def _create(self, messages: List[Dict[str, str]], timeout_s: float, temperature: float) -> Any:
        return self.client.chat.completions.create(
            model=self.model,
            temperature=temperature,
            response_format={"type": "json_object"},
            messages=messages,
            timeout=timeout_s,
        )

    @staticmethod
    def _content_of(response: Any) -> Optional[str]:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return None
        message = getattr(choices[0], "message", None)
        return getattr(message, "content", None)

    @staticmethod
    def _finish_reason(response: Any) -> Optional[str]:
        choices = getattr(response, "choices", None) or []
        return getattr(choices[0], "finish_reason", None) if choices else None

"""Retry transport built on Tenacity.

Provides:
- Retryability classification for responses and exceptions
- Retry-After header aware wait strategy
- Tenacity controller builder
- :class:`RetryTransport`, re-issuing a request until it succeeds or the
  attempt budget (``max_retries + 1``) is spent

Exhaustion surfaces the last real outcome: the last response is returned or
the last exception is re-raised, never a wrapper.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import email.utils
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_exception, retry_if_result

from ..config_manager import ConfigManager
from ..settings import RetrySettings
from .base import MiddlewareTransport

LOGGER = logging.getLogger(__name__)

ResponsePredicate = Callable[[httpx.Response, RetrySettings], bool]
ExceptionPredicate = Callable[[BaseException, RetrySettings], bool]

_CANCELLED = (asyncio.CancelledError, concurrent.futures.CancelledError)


def default_should_retry_response(response: httpx.Response, settings: RetrySettings) -> bool:
    """Retry responses whose status is listed in ``retry_statuses``."""
    return response.status_code in settings.retry_statuses


def default_should_retry_exception(exception: BaseException, settings: RetrySettings) -> bool:
    """Retry transport failures; timeouts only when ``retry_on_timeout``."""
    if isinstance(exception, httpx.TimeoutException):
        return settings.retry_on_timeout
    return isinstance(exception, httpx.TransportError)


def is_retryable_method(method: str, settings: RetrySettings) -> bool:
    return settings.allow_non_idempotent or method.upper() in settings.idempotent_methods


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Return the delay in seconds carried by a ``Retry-After`` header value.

    Examples:
        >>> parse_retry_after("3")
        3.0
        >>> parse_retry_after("soon") is None
        True
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(int(value)))
    except ValueError:
        pass
    try:
        when = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    current = now or datetime.now(when.tzinfo)
    return max(0.0, (when - current).total_seconds())


class _WaitRetryAfter(tenacity.wait.wait_base):
    """Wait strategy that prefers a Retry-After header over the fallback backoff."""

    def __init__(self, fallback: tenacity.wait.wait_base, cap_s: float) -> None:
        self.fallback = fallback
        self.cap_s = cap_s

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is None or outcome.failed:
            return self.fallback(retry_state)

        response = outcome.result()
        retry_after_s = parse_retry_after(getattr(response, "headers", {}).get("Retry-After"))
        if retry_after_s is not None and retry_after_s > 0:
            wait_s = min(retry_after_s, self.cap_s)
            LOGGER.debug(f"Using Retry-After header: {wait_s}s (capped at {self.cap_s}s)")
            return wait_s
        return self.fallback(retry_state)


def _make_retry_predicates(
    settings: RetrySettings,
    should_retry_response: ResponsePredicate,
    should_retry_exception: ExceptionPredicate,
) -> tuple[Callable[[BaseException], bool], Callable[[Any], bool]]:
    def exception_predicate(exception: BaseException) -> bool:
        if isinstance(exception, _CANCELLED):
            return settings.retry_cancelled
        if not isinstance(exception, Exception):
            return False
        return should_retry_exception(exception, settings)

    def result_predicate(value: Any) -> bool:
        if not isinstance(value, httpx.Response):
            return False
        return should_retry_response(value, settings)

    return exception_predicate, result_predicate


def _before_sleep(request: httpx.Request) -> Callable[[RetryCallState], None]:
    def hook(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        fields = {
            "method": request.method,
            "url": str(request.url),
            "attempt": retry_state.attempt_number,
            "elapsed_s": round(retry_state.seconds_since_start or 0.0, 3),
        }
        if retry_state.next_action is not None:
            fields["wait_ms"] = int(retry_state.next_action.sleep * 1000)
        if outcome is not None and outcome.failed:
            error = outcome.exception()
            fields["error"] = f"{type(error).__name__}: {error}"
        elif outcome is not None:
            response = outcome.result()
            fields["status"] = response.status_code
            # the next attempt replaces this response
            response.close()
        LOGGER.warning("retry-scheduled", extra=fields)

    return hook


def _surface_last_outcome(retry_state: RetryCallState) -> Any:
    return retry_state.outcome.result()


def build_tenacity_retrying(
    settings: RetrySettings,
    request: httpx.Request,
    *,
    should_retry_response: ResponsePredicate = default_should_retry_response,
    should_retry_exception: ExceptionPredicate = default_should_retry_exception,
    sleep: Callable[[float], None] = time.sleep,
) -> tenacity.Retrying:
    """Build a Tenacity controller for one request under ``settings``."""

    retry_exc_predicate, retry_result_predicate = _make_retry_predicates(
        settings, should_retry_response, should_retry_exception
    )

    if settings.backoff == "fixed":
        fallback_wait: tenacity.wait.wait_base = tenacity.wait_fixed(settings.backoff_base_s)
    else:
        fallback_wait = tenacity.wait_exponential(
            multiplier=settings.backoff_base_s,
            exp_base=settings.backoff_multiplier,
            max=settings.backoff_max_s,
        )
    wait_strategy: tenacity.wait.wait_base = fallback_wait
    if settings.respect_retry_after:
        wait_strategy = _WaitRetryAfter(fallback=fallback_wait, cap_s=settings.retry_after_cap_s)

    return tenacity.Retrying(
        retry=retry_if_exception(retry_exc_predicate) | retry_if_result(retry_result_predicate),
        stop=tenacity.stop_after_attempt(settings.max_retries + 1),
        wait=wait_strategy,
        sleep=sleep,
        before_sleep=_before_sleep(request),
        retry_error_callback=_surface_last_outcome,
    )


class RetryTransport(MiddlewareTransport[RetrySettings]):
    """Re-issue failed requests through the inner transport.

    Args:
        inner: Transport every attempt is sent through.
        config_manager: Source of per-host :class:`RetrySettings`.
        should_retry_response: Replaces the status based response predicate.
        should_retry_exception: Replaces the transport-error predicate.
        sleep: Blocking sleep used between attempts, injectable for tests.
    """

    settings_cls = RetrySettings

    def __init__(
        self,
        inner: httpx.BaseTransport,
        config_manager: ConfigManager,
        *,
        should_retry_response: Optional[ResponsePredicate] = None,
        should_retry_exception: Optional[ExceptionPredicate] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(inner, config_manager)
        self._should_retry_response = should_retry_response or default_should_retry_response
        self._should_retry_exception = should_retry_exception or default_should_retry_exception
        self._sleep = sleep

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        settings = self.settings_for(request)
        if (
            not settings.enabled
            or settings.max_retries == 0
            or not is_retryable_method(request.method, settings)
        ):
            return self._inner.handle_request(request)

        # buffer the body so every attempt sends the same bytes
        request.read()
        retrying = build_tenacity_retrying(
            settings,
            request,
            should_retry_response=self._should_retry_response,
            should_retry_exception=self._should_retry_exception,
            sleep=self._sleep,
        )
        return retrying(self._inner.handle_request, request)


__all__ = [
    "RetryTransport",
    "build_tenacity_retrying",
    "default_should_retry_exception",
    "default_should_retry_response",
    "is_retryable_method",
    "parse_retry_after",
]

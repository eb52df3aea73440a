from collections.abc import Callable
from typing import Any

from tenacity import (
    RetryCallState,
    retry,
    stop_after_attempt,
    wait_exponential_jitter,
)

from velocity.exceptions import NetworkError, RateLimitError, TimeoutError
from velocity.logger import get_logger


MAX_ALLOWED_RETRIES = 10
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    NetworkError,
    TimeoutError,
    RateLimitError,
)


class RetryMixin:
    """Wraps provider calls in a tenacity retry policy.

    Network failures, timeouts and rate limits are retried with exponential
    backoff; a rate limit that reports its reset time waits for it, capped at
    ``max_wait``. Everything else is raised on the first attempt.
    """

    max_retries: int = 3
    backoff_factor: float = 1.0

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._retry_logger = get_logger(f"clients.{self.__class__.__name__}.retry")

    def with_retry(
        self,
        func: Callable[..., Any],
        max_retries: int | None = None,
        backoff_factor: float | None = None,
        max_wait: float = 60.0,
        jitter: bool = True,
        retry_on: tuple[type[Exception], ...] = RETRYABLE_ERRORS,
    ) -> Callable[..., Any]:
        attempts = self.max_retries if max_retries is None else max_retries
        backoff = self.backoff_factor if backoff_factor is None else backoff_factor
        if attempts < 0:
            raise ValueError("max_retries cannot be negative")
        if attempts > MAX_ALLOWED_RETRIES:
            self._retry_logger.warning(
                f"max_retries capped at {MAX_ALLOWED_RETRIES} (was {attempts})"
            )
            attempts = MAX_ALLOWED_RETRIES
        name = getattr(func, "__name__", "call")

        def wait_strategy(retry_state: RetryCallState) -> float:
            if retry_state.outcome and retry_state.outcome.failed:
                exception = retry_state.outcome.exception()
                if isinstance(exception, RateLimitError) and exception.reset_time:
                    wait_time = float(min(exception.reset_time, max_wait))
                    self._retry_logger.warning(
                        f"Rate limit hit. Waiting {wait_time}s until reset."
                    )
                    return wait_time

            if jitter:
                return wait_exponential_jitter(
                    initial=backoff, max=max_wait, jitter=backoff
                )(retry_state)
            exponent = max(retry_state.attempt_number - 1, 0)
            return float(min(backoff * (2**exponent), max_wait))

        def should_retry(retry_state: RetryCallState) -> bool:
            if not retry_state.outcome or not retry_state.outcome.failed:
                return False
            exception = retry_state.outcome.exception()
            if not isinstance(exception, retry_on):
                return False
            self._retry_logger.warning(
                f"Attempt {retry_state.attempt_number}/{attempts} of {name} "
                f"failed: {exception}"
            )
            return True

        return retry(
            stop=stop_after_attempt(max(attempts, 1)),
            wait=wait_strategy,
            retry=should_retry,
            reraise=True,
        )(func)

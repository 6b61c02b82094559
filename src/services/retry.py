"""
Retry policy shared by every network boundary (feeds, pages, rewrite service).
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Tuple, Type

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def is_retryable(exc: BaseException) -> bool:
    """
    Transport errors, timeouts and 5xx/429 responses are retried; other 4xx are not.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    return False


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    retry_on: Tuple[Type[BaseException], ...] = ()

    def delays(self) -> Iterator[float]:
        """
        Sleep before each retry: base, base*factor, base*factor^2, ... capped at max_delay.
        """
        for attempt in range(self.max_attempts - 1):
            yield min(self.base_delay * (self.backoff_factor ** attempt), self.max_delay)

    def should_retry(self, exc: BaseException) -> bool:
        if self.retry_on and isinstance(exc, self.retry_on):
            return True
        return is_retryable(exc)

    async def run(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        description: str = "operation",
        **kwargs,
    ) -> Any:
        delays = list(self.delays())

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if attempt >= self.max_attempts or not self.should_retry(e):
                    raise

                delay = delays[attempt - 1]
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} for {description} failed: "
                    f"{e.__class__.__name__}: {e}; retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        raise RuntimeError(f"Retry loop exited without result for {description}")


NO_RETRY = RetryPolicy(max_attempts=1)

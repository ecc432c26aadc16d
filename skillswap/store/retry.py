import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import httpx

from skillswap.errors import StoreUnavailableError


logger = logging.getLogger(__name__)
T = TypeVar("T")


def exponential_backoff(base: float = 0.5, maximum: float = 8.0) -> Callable[[int], float]:
    """Delay before retry number `attempt` (1-based): base, 2*base, 4*base ... capped."""

    def backoff(attempt: int) -> float:
        return min(maximum, base * (2 ** (attempt - 1)))

    return backoff


@dataclass
class RetryPolicy:
    """
    Retry rules applied to every document store call.

    Only exceptions listed in `retry_on` are retried (transport failures by
    default). Anything else, or the last failed attempt, is raised as
    StoreUnavailableError with the original exception chained.
    """

    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=exponential_backoff)
    retry_on: Tuple[Type[BaseException], ...] = (httpx.TransportError,)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")

    async def run(self, operation: Callable[[], Awaitable[T]], name: str) -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except StoreUnavailableError:
                raise
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        f"store_call_failed operation={name} attempts={attempt} error={e!r}"
                    )
                    raise StoreUnavailableError(name, e) from e

                delay = self.backoff(attempt)
                logger.warning(
                    f"store_call_retry operation={name} attempt={attempt}/{self.max_attempts} "
                    f"delay={delay:.2f}s error={e!r}"
                )
                await self.sleep(delay)
                attempt += 1
            except Exception as e:
                logger.error(f"store_call_failed operation={name} error={e!r}")
                raise StoreUnavailableError(name, e) from e

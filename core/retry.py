import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0


def backoff_delay(attempt: int, base_delay: float, rng: Callable[[float, float], float] = random.uniform) -> float:
    """Delay to wait after failed attempt number ``attempt`` (1-based)."""
    return base_delay * (2 ** (attempt - 1)) * rng(0.5, 1.0)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    retry_on: tuple = (Exception,),
    label: str = "call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Callable[[float, float], float] = random.uniform,
) -> T:
    """Run ``func`` up to ``attempts`` times with jittered exponential backoff.

    The last error is re-raised once attempts are exhausted. Cancellation is
    never retried.
    """
    attempts = max(1, int(attempts))
    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            return await func()
        except asyncio.CancelledError:
            raise
        except retry_on as exc:
            last_error = exc
            if attempt >= attempts:
                log.warning("%s failed on attempt %s/%s: %s", label, attempt, attempts, exc)
                break
            delay = backoff_delay(attempt, base_delay, rng)
            log.warning(
                "%s failed on attempt %s/%s: %s (retrying in %.2fs)",
                label,
                attempt,
                attempts,
                exc,
                delay,
            )
            await sleep(delay)
    assert last_error is not None
    raise last_error

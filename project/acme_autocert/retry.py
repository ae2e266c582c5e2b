import logging
import random
from dataclasses import dataclass
from time import sleep
from typing import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AbortToken:
    """Handed to a retried function, which sets it to stop further attempts."""

    def __init__(self):
        self.aborted = False

    def abort(self) -> None:
        self.aborted = True

    def __bool__(self) -> bool:
        return self.aborted


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff between `min_delay` and `max_delay` seconds.

    The delay before retry n (0-based) is min_delay * factor**n, capped at
    max_delay. Jitter adds up to `jitter` times the delay but the result is
    capped again, so `attempts` tries never wait more than attempts *
    max_delay in total.
    """

    attempts: int = 5
    min_delay: float = 5.0
    max_delay: float = 30.0
    factor: float = 2.0
    jitter: float = 0.0

    def duration(self, retry: int) -> float:
        delay = min(self.max_delay, self.min_delay * self.factor**retry)
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter * delay)
        return min(self.max_delay, delay)

    def retry(self, fn: Callable[[AbortToken], T]) -> T:
        """Call `fn` until it returns, at most `attempts` times.

        An exception from the final attempt, or from any attempt after which
        the token was aborted, is re-raised unchanged. An exception carrying
        a `retry_after` attribute may lengthen the wait up to `max_delay`.
        """
        abort = AbortToken()
        attempt = 0
        while True:
            try:
                return fn(abort)
            except Exception as e:
                attempt += 1
                if abort or attempt >= self.attempts:
                    raise

                duration = self.duration(attempt - 1)
                retry_after = getattr(e, "retry_after", None)
                if retry_after:
                    duration = min(self.max_delay, max(duration, retry_after))
                logger.debug(
                    f"Attempt #{attempt} failed, retrying in {duration:.1f}s: {e}"
                )
                sleep(duration)

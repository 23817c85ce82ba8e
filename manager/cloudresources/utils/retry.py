"""
Bounded polling for eventually consistent provider reads.

Freshly issued credentials are not always visible to a provider's list APIs
straight away, so list calls made right after a credential handshake are
retried on a fixed interval until a hard ceiling is reached.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from cloudresources.errors import RetryTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _always(error: Exception) -> bool:
    return True


@dataclass
class RetryPolicy:
    """
    Immediate-first-attempt retry policy with a fixed interval and ceiling.

    Attributes:
        interval: Seconds to wait between attempts
        timeout: Seconds after the first attempt when polling gives up
        retryable: Predicate deciding whether an exception may be retried
        sleep: Sleep function, injectable for tests
        clock: Monotonic clock, injectable for tests
    """
    interval: float = 5.0
    timeout: float = 300.0
    retryable: Callable[[Exception], bool] = _always
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def call(self, func: Callable[..., T], *args: Any, description: Optional[str] = None, **kwargs: Any) -> T:
        """
        Call func until it returns without raising.

        Args:
            func: Function to call
            *args: Positional arguments for func
            description: Name used in log lines, defaults to func.__name__
            **kwargs: Keyword arguments for func

        Returns:
            Result of the first successful call

        Raises:
            The exception itself when it is not retryable
            RetryTimeout: If the ceiling is reached
        """
        name = description or getattr(func, "__name__", "operation")
        deadline = self.clock() + self.timeout
        attempt = 0

        while True:
            attempt += 1
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not self.retryable(e):
                    raise
                if self.clock() + self.interval > deadline:
                    logger.error(f"All {attempt} attempts failed for {name}: {str(e)}")
                    raise RetryTimeout(f"timed out waiting for {name}", original_error=e) from e
                logger.warning(
                    f"Attempt {attempt} failed for {name}: "
                    f"{str(e)}. Retrying in {self.interval}s..."
                )
                self.sleep(self.interval)

    def poll(self, condition: Callable[[], bool], description: str = "condition") -> None:
        """
        Wait until condition returns True.

        Exceptions raised by condition are not retried; a condition that can
        fail transiently should catch and return False itself.

        Raises:
            RetryTimeout: If the condition is still False at the ceiling
        """
        deadline = self.clock() + self.timeout
        while True:
            if condition():
                return
            if self.clock() + self.interval > deadline:
                raise RetryTimeout(f"timed out waiting for {description}")
            self.sleep(self.interval)

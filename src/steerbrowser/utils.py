"""Shared async helpers."""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from steerbrowser.exceptions import WaitTimeoutError

logger = logging.getLogger(__name__)


async def wait_until(
    condition: Callable[[], Awaitable[Any] | Any],
    interval: int = 100,
    timeout: int = 10000,
) -> Any:
    """Poll ``condition`` until it returns a truthy value.

    Errors raised by the condition count as "not yet" and are logged at debug
    level, since the page may be mid-navigation when it is evaluated.

    Args:
        condition: Sync or async callable polled every ``interval`` ms.
        interval: Polling interval in milliseconds.
        timeout: Give up after this many milliseconds. ``0`` makes a single attempt.

    Returns:
        The first truthy value returned by the condition.

    Raises:
        WaitTimeoutError: If the condition never held within ``timeout``.
    """
    deadline = time.monotonic() + max(timeout, 0) / 1000
    while True:
        try:
            result = condition()
            if inspect.isawaitable(result):
                result = await result
            if result:
                return result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f'wait_until condition raised, retrying: {type(e).__name__}: {e}')

        if time.monotonic() >= deadline:
            raise WaitTimeoutError(timeout)
        await asyncio.sleep(interval / 1000)


def ms_to_seconds(value: int | float) -> float:
    return value / 1000

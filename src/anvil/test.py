"""Helper methods for anvil and downstream tests."""

from __future__ import annotations

import asyncio
import logging
import os
import time
import typing as t

from anvil.exc import WaitTimeout

if t.TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

#: Number of seconds to wait before timing out when retrying operations
#: Can be configured via :envvar:`RETRY_TIMEOUT_SECONDS` environment variable
#: Defaults to 8 seconds
RETRY_TIMEOUT_SECONDS = int(os.getenv("RETRY_TIMEOUT_SECONDS", 8))

#: Interval in seconds between retry attempts
#: Can be configured via :envvar:`RETRY_INTERVAL_SECONDS` environment variable
#: Defaults to 0.05 seconds (50ms)
RETRY_INTERVAL_SECONDS = float(os.getenv("RETRY_INTERVAL_SECONDS", 0.05))


def retry_until(
    fun: Callable[[], bool],
    seconds: float = RETRY_TIMEOUT_SECONDS,
    *,
    interval: float = RETRY_INTERVAL_SECONDS,
    raises: bool | None = True,
) -> bool:
    """
    Retry a function until a condition meets or the specified time passes.

    Only for use outside a running event loop, it blocks with
    :func:`time.sleep`.

    Parameters
    ----------
    fun : callable
        A function that will be called repeatedly until it returns ``True``  or
        the specified time passes.
    seconds : float
        Seconds to retry. Defaults to ``8``, which is configurable via
        ``RETRY_TIMEOUT_SECONDS`` environment variables.
    interval : float
        Time in seconds to wait between calls. Defaults to ``0.05`` and is
        configurable via ``RETRY_INTERVAL_SECONDS`` environment variable.
    raises : bool
        Whether or not to raise an exception on timeout. Defaults to ``True``.

    Examples
    --------
    >>> retry_until(lambda: True)
    True
    >>> retry_until(lambda: False, 0.1, raises=False)
    False
    """
    ini = time.time()

    while not fun():
        end = time.time()
        if end - ini >= seconds:
            if raises:
                raise WaitTimeout
            return False
        time.sleep(interval)
    return True


async def aretry_until(
    fun: Callable[[], bool],
    seconds: float = RETRY_TIMEOUT_SECONDS,
    *,
    interval: float = RETRY_INTERVAL_SECONDS,
    raises: bool | None = True,
) -> bool:
    """Async :func:`retry_until`, yields to the event loop between calls.

    Examples
    --------
    >>> import asyncio
    >>> asyncio.run(aretry_until(lambda: True))
    True
    """
    ini = time.monotonic()

    while not fun():
        if time.monotonic() - ini >= seconds:
            if raises:
                raise WaitTimeout
            return False
        await asyncio.sleep(interval)
    return True

"""Completion detection for anvil jobs.

anvil.watcher
~~~~~~~~~~~~~

A job is finished once its exit-code file appears. :class:`FilePollingWatcher`
looks for it on a recurring event-loop timer and works for every
presentation, including tmux panes anvil cannot wait on.
:class:`ProcessWaitWatcher` waits on the surface's process instead, where the
host can do that, and reads the same file afterwards.

Watchers never block the event loop: a poll tick is one small file read.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import typing as t

from .constants import POLL_DELAY_SECONDS, POLL_INTERVAL_SECONDS
from .protocol import read_exit_code, remove_quietly

if t.TYPE_CHECKING:
    from collections.abc import Callable

    from .options import Options
    from .presentation import Handle
    from .protocol import JobFiles

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class JobResult:
    """Outcome of a finished job.

    Attributes
    ----------
    exit_code : int
        Status the command exited with, ``0`` if it could not be read.
    output : list[str] | None
        Captured lines when ``log_to_qf`` was set and the log existed.
    options : :class:`anvil.options.Options`
        Options the job ran with.
    """

    exit_code: int
    output: list[str] | None
    options: Options

    @property
    def success(self) -> bool:
        """Return True if the command exited with ``0``."""
        return self.exit_code == 0


def should_close(exit_code: int, options: Options) -> bool:
    """Return True if the surface should be closed after ``exit_code``.

    >>> from anvil.options import Options
    >>> should_close(0, Options(close_on_success=True))
    True
    >>> should_close(2, Options(close_on_success=True))
    False
    >>> should_close(2, Options(close_on_error=True))
    True
    """
    if exit_code == 0:
        return options.close_on_success
    return options.close_on_error


class CompletionWatcher:
    """Base class of completion watchers.

    Subclasses call :meth:`_complete` exactly once when the exit code is
    known. With ``timeout`` set, ``on_timeout`` is called instead if that
    does not happen in time.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        files: JobFiles,
        timeout: float | None = None,
    ) -> None:
        self.loop = loop
        self.files = files
        self.timeout = timeout
        self._active = False
        self._on_complete: Callable[[int], None] | None = None
        self._on_timeout: Callable[[], None] | None = None
        self._deadline: asyncio.TimerHandle | None = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.files.exit_code_file}, active={self._active})"

    @property
    def active(self) -> bool:
        """Return True between :meth:`start` and completion or :meth:`stop`."""
        return self._active

    def start(
        self,
        on_complete: Callable[[int], None],
        on_timeout: Callable[[], None] | None = None,
    ) -> None:
        """Begin watching, ``on_complete(exit_code)`` is called once."""
        self._on_complete = on_complete
        self._on_timeout = on_timeout
        self._active = True
        if self.timeout is not None:
            self._deadline = self.loop.call_later(self.timeout, self._expire)
        self._arm()

    def stop(self) -> None:
        """Stop watching without completing."""
        self._active = False
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        self._disarm()

    def _arm(self) -> None:
        raise NotImplementedError

    def _disarm(self) -> None:
        raise NotImplementedError

    def _complete(self, exit_code: int) -> None:
        remove_quietly(self.files.exit_code_file)
        self.stop()
        logger.debug(f"job finished with exit code {exit_code}")
        if self._on_complete is not None:
            self._on_complete(exit_code)

    def _expire(self) -> None:
        self._deadline = None
        if not self._active:
            return
        logger.warning(
            f"no exit code in {self.files.exit_code_file} after {self.timeout:g}s",
        )
        self.stop()
        if self._on_timeout is not None:
            self._on_timeout()


class FilePollingWatcher(CompletionWatcher):
    """Poll for the exit-code file on a recurring event-loop timer.

    The first check happens after ``delay`` seconds, then every ``interval``
    seconds until the file is found. Without a ``timeout`` a job that never
    writes its exit code is polled for as long as the loop runs.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        files: JobFiles,
        delay: float = POLL_DELAY_SECONDS,
        interval: float = POLL_INTERVAL_SECONDS,
        timeout: float | None = None,
    ) -> None:
        super().__init__(loop, files, timeout=timeout)
        self.delay = delay
        self.interval = interval
        self.ticks = 0
        self._timer: asyncio.TimerHandle | None = None

    def _arm(self) -> None:
        self._timer = self.loop.call_later(self.delay, self._tick)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _tick(self) -> None:
        self._timer = None
        if not self._active:
            return

        self.ticks += 1
        exit_code = read_exit_code(self.files.exit_code_file)
        if exit_code is None:
            self._timer = self.loop.call_later(self.interval, self._tick)
            return

        self._complete(exit_code)


class ProcessWaitWatcher(CompletionWatcher):
    """Wait for the surface's process to exit, then read the exit code.

    The blocking wait runs in the loop's default executor. If the exit-code
    file is missing afterwards, the process' own status is used.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        files: JobFiles,
        handle: Handle,
        timeout: float | None = None,
    ) -> None:
        super().__init__(loop, files, timeout=timeout)
        self.handle = handle
        self._waiter: asyncio.Future[int] | None = None

    def _arm(self) -> None:
        self._waiter = self.loop.run_in_executor(None, self.handle.wait)
        self._waiter.add_done_callback(self._exited)

    def _disarm(self) -> None:
        if self._waiter is not None and not self._waiter.done():
            self._waiter.cancel()
        self._waiter = None

    def _exited(self, waiter: asyncio.Future[int]) -> None:
        if not self._active or waiter.cancelled():
            return

        error = waiter.exception()
        if error is not None:
            logger.error(f"waiting for {self.handle!r} failed: {error}")
            returncode = 0
        else:
            returncode = waiter.result()

        exit_code = read_exit_code(self.files.exit_code_file)
        if exit_code is None:
            exit_code = returncode
        self._complete(exit_code)

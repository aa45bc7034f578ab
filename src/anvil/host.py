"""Host services anvil runs against.

anvil.host
~~~~~~~~~~

anvil does not own windows, terminals or the output list. It talks to them
through three protocols:

- :class:`TerminalHost`: splits, terminal surfaces and focus.
- :class:`OutputSink`: the output ("quickfix") list captured lines go to.
- :class:`Notifier`: user-facing messages.

Headless implementations are provided so anvil can run outside an editor:
:class:`SubprocessHost` runs every terminal surface as a plain child process,
:class:`QuickfixList` keeps the output list in memory and :class:`LogNotifier`
reports through :mod:`logging`.
"""

from __future__ import annotations

import contextlib
import dataclasses
import itertools
import logging
import os
import signal
import subprocess
import typing as t

if t.TYPE_CHECKING:
    from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)


class TerminalHost(t.Protocol):
    """Window and terminal services of the host application."""

    @property
    def lines(self) -> int:
        """Return the height of the host in rows."""
        ...

    def current_window(self) -> t.Any:
        """Return the focused window."""
        ...

    def is_valid_window(self, window: t.Any) -> bool:
        """Return True if ``window`` still exists."""
        ...

    def focus(self, window: t.Any) -> None:
        """Focus ``window``."""
        ...

    def open_terminal(self, argv: Sequence[str]) -> t.Any:
        """Split and run ``argv`` in a new terminal surface, return the surface."""
        ...

    def scroll_to_bottom(self, surface: t.Any) -> None:
        """Follow the end of the surface's output."""
        ...

    def move_to_bottom(self, surface: t.Any) -> None:
        """Move the surface to the bottom of the host, full width."""
        ...

    def resize(self, surface: t.Any, rows: int) -> None:
        """Set the surface height."""
        ...

    def is_terminal(self, surface: t.Any) -> bool:
        """Return True if ``surface`` still hosts a terminal."""
        ...

    def close(self, surface: t.Any) -> None:
        """Close ``surface`` and discard its buffer."""
        ...

    def on_terminal_close(
        self,
        surface: t.Any,
        callback: Callable[[], None],
    ) -> None:
        """Call ``callback`` when the user closes the process in ``surface``."""
        ...


class OutputSink(t.Protocol):
    """Line list the captured output is forwarded to."""

    def replace(self, title: str, lines: Sequence[str]) -> None:
        """Replace the list contents."""
        ...

    def open(self) -> None:
        """Show the list to the user."""
        ...


class Notifier(t.Protocol):
    """User-facing notifications."""

    def notify(self, message: str, level: int = logging.INFO) -> None:
        """Show ``message`` with the :mod:`logging` severity ``level``."""
        ...


@dataclasses.dataclass(eq=False)
class Surface:
    """Terminal surface of :class:`SubprocessHost`."""

    window_id: int
    argv: list[str]
    process: subprocess.Popen[bytes]
    height: int | None = None
    at_bottom: bool = False
    scrolled: bool = False
    closed: bool = False
    observers: list[Callable[[], None]] = dataclasses.field(default_factory=list)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.window_id}"
            f" pid={self.process.pid} closed={self.closed})"
        )

    @property
    def running(self) -> bool:
        """Return True while the surface's process has not exited."""
        return self.process.poll() is None


class SubprocessHost:
    """Headless :class:`TerminalHost`, surfaces are child processes.

    Window ``0`` is the host's own window and always exists.

    Parameters
    ----------
    lines : int
        Height of the host in rows.
    stdout, stderr : optional
        Passed to :class:`subprocess.Popen` for every surface, inherited by
        default.
    cwd : str, optional
        Working directory of the surfaces.
    """

    def __init__(
        self,
        lines: int = 40,
        stdout: t.Any = None,
        stderr: t.Any = None,
        cwd: str | None = None,
    ) -> None:
        self._lines = lines
        self.stdout = stdout
        self.stderr = stderr
        self.cwd = cwd
        self._ids = itertools.count(1)
        self._current = 0
        self.surfaces: dict[int, Surface] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(surfaces={len(self.surfaces)})"

    @property
    def lines(self) -> int:
        """Return the height of the host in rows."""
        return self._lines

    def current_window(self) -> int:
        """Return the focused window id."""
        return self._current

    def is_valid_window(self, window: t.Any) -> bool:
        """Return True if ``window`` is the host window or an open surface."""
        return window == 0 or window in self.surfaces

    def focus(self, window: t.Any) -> None:
        """Focus ``window``."""
        if not self.is_valid_window(window):
            logger.debug(f"focus on invalid window {window}")
            return
        self._current = window

    def open_terminal(self, argv: Sequence[str]) -> Surface:
        """Start ``argv`` and return its surface, which becomes focused.

        The process leads its own process group, closing the surface signals
        the whole group. Surfaces whose process finished and that were never
        closed are dropped first.
        """
        self.prune()
        window_id = next(self._ids)
        process = subprocess.Popen(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=self.stdout,
            stderr=self.stderr,
            cwd=self.cwd,
            start_new_session=True,
        )
        surface = Surface(window_id=window_id, argv=list(argv), process=process)
        self.surfaces[window_id] = surface
        self._current = window_id
        logger.debug(f"opened {surface!r}")
        return surface

    def scroll_to_bottom(self, surface: Surface) -> None:
        """Follow the end of output."""
        surface.scrolled = True

    def move_to_bottom(self, surface: Surface) -> None:
        """Move the surface to the bottom."""
        surface.at_bottom = True

    def resize(self, surface: Surface, rows: int) -> None:
        """Set the surface height."""
        surface.height = rows

    def is_terminal(self, surface: Surface) -> bool:
        """Return True unless the surface was closed."""
        return not surface.closed

    def prune(self) -> list[Surface]:
        """Forget surfaces whose process exited without being closed.

        Returns
        -------
        list[Surface]
            The surfaces dropped.
        """
        finished = [
            surface
            for surface in self.surfaces.values()
            if surface.window_id != self._current and not surface.running
        ]
        for surface in finished:
            del self.surfaces[surface.window_id]
            logger.debug(f"pruned {surface!r}")
        return finished

    def close(self, surface: Surface) -> None:
        """Close the surface, terminating its process group if it still runs."""
        if surface.closed:
            return
        if surface.running:
            self._signal(surface, signal.SIGTERM)
            try:
                surface.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._signal(surface, signal.SIGKILL)
                surface.process.wait()
        surface.closed = True
        self.surfaces.pop(surface.window_id, None)
        if self._current == surface.window_id:
            self._current = 0
        logger.debug(f"closed {surface!r}")

    def on_terminal_close(
        self,
        surface: Surface,
        callback: Callable[[], None],
    ) -> None:
        """Register ``callback`` for :meth:`kill`."""
        surface.observers.append(callback)

    def kill(self, surface: Surface) -> None:
        """Kill the surface's process the way a user would, then notify."""
        if surface.running:
            self._signal(surface, signal.SIGKILL)
            surface.process.wait()
        for callback in list(surface.observers):
            callback()

    def wait(self, surface: Surface) -> int:
        """Block until the surface's process exits, return its exit status."""
        return surface.process.wait()

    def _signal(self, surface: Surface, sig: int) -> None:
        with contextlib.suppress(ProcessLookupError):
            os.killpg(surface.process.pid, sig)


class QuickfixList:
    """In-memory :class:`OutputSink`.

    >>> qf = QuickfixList()
    >>> qf.replace("Command Output", ["a.c:1: error", "done"])
    >>> qf.title, qf.lines
    ('Command Output', ['a.c:1: error', 'done'])
    """

    def __init__(self) -> None:
        self.title: str | None = None
        self.lines: list[str] = []
        self.opened = False
        self.replace_count = 0

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.title!r}, {len(self.lines)} lines)"

    def replace(self, title: str, lines: Sequence[str]) -> None:
        """Replace title and lines."""
        self.title = title
        self.lines = list(lines)
        self.replace_count += 1

    def open(self) -> None:
        """Mark the list as shown."""
        self.opened = True


class LogNotifier:
    """:class:`Notifier` logging to ``logger``, ``anvil`` by default."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger if logger is not None else logging.getLogger("anvil")

    def notify(self, message: str, level: int = logging.INFO) -> None:
        """Log ``message`` at ``level``."""
        self.logger.log(level, message)

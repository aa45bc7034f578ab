"""Where a job runs: a tmux pane or a terminal surface of the host.

anvil.presentation
~~~~~~~~~~~~~~~~~~

Both strategies run the command wrapped by
:func:`anvil.protocol.wrap_command` and differ only in where it is shown and
whether they hand back a :class:`Handle` that can be closed later.
"""

from __future__ import annotations

import logging
import math
import typing as t

from . import exc
from .common import tmux_cmd
from .protocol import shell_invocation, shell_string, wrap_command

if t.TYPE_CHECKING:
    from collections.abc import Callable

    from .host import TerminalHost
    from .options import Options
    from .protocol import JobFiles

logger = logging.getLogger(__name__)


class Handle:
    """Closeable reference to a terminal surface running a job."""

    def __init__(self, host: TerminalHost, surface: t.Any) -> None:
        self.host = host
        self.surface = surface

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.surface!r})"

    @property
    def is_open(self) -> bool:
        """Return True while the surface still hosts a terminal."""
        return self.host.is_terminal(self.surface)

    @property
    def can_wait(self) -> bool:
        """Return True if the host can block on the surface's process."""
        return callable(getattr(self.host, "wait", None))

    def close(self) -> bool:
        """Close the surface, unless it no longer hosts a terminal.

        Returns
        -------
        bool
            True if the surface was closed.
        """
        if not self.is_open:
            logger.debug(f"{self.surface!r} is not a terminal, left open")
            return False
        self.host.close(self.surface)
        return True

    def wait(self) -> int:
        """Block until the surface's process exits, return its status."""
        return t.cast("int", self.host.wait(self.surface))  # type: ignore[attr-defined]


class Presentation(t.Protocol):
    """Start a wrapped job somewhere visible."""

    def start(
        self,
        command: str,
        files: JobFiles,
        options: Options,
    ) -> Handle | None:
        """Start ``command`` and return a handle if it can be closed later."""
        ...


class TmuxPresentation:
    """Run jobs in a new tmux pane below the current one.

    The pane is split off without taking focus and closes by itself when the
    command exits, so no handle is returned.

    Parameters
    ----------
    socket_name : str, optional
        ``-L`` socket of the tmux server, the current server by default.
    target : str, optional
        ``-t`` target pane to split, the current pane by default.
    cmd : callable, optional
        Runs tmux commands, :class:`anvil.common.tmux_cmd` by default.
    """

    def __init__(
        self,
        socket_name: str | None = None,
        target: str | None = None,
        cmd: Callable[..., tmux_cmd] = tmux_cmd,
    ) -> None:
        self.socket_name = socket_name
        self.target = target
        self.cmd = cmd

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(socket_name={self.socket_name!r})"

    def split_args(self, shell: str, options: Options) -> tuple[str, ...]:
        """Return the ``tmux`` arguments splitting a pane running ``shell``.

        >>> from anvil.options import Options
        >>> TmuxPresentation(socket_name="x").split_args("true", Options())
        ('-Lx', 'split-window', '-v', '-d', '-l30%', 'true')
        """
        tmux_args: tuple[str, ...] = ()
        if self.socket_name is not None:
            tmux_args += (f"-L{self.socket_name}",)

        tmux_args += ("split-window", "-v", "-d")
        if self.target is not None:
            tmux_args += (f"-t{self.target}",)
        tmux_args += (f"-l{round(options.height * 100)}%",)
        tmux_args += (shell,)
        return tmux_args

    def start(
        self,
        command: str,
        files: JobFiles,
        options: Options,
    ) -> Handle | None:
        """Split a pane running the wrapped command.

        Raises
        ------
        :exc:`exc.PresentationError`
            tmux reported an error.
        :exc:`exc.TmuxCommandNotFound`
        """
        fragment = wrap_command(command, files, capture=options.log_to_qf)
        proc = self.cmd(*self.split_args(shell_string(fragment), options))

        if proc.stderr:
            raise exc.PresentationError(
                "tmux split-window failed: {}".format("\n".join(proc.stderr)),
            )

        logger.debug(f"started in tmux pane: {command}")
        return None


class TerminalPresentation:
    """Run jobs in a terminal surface of the host, docked at the bottom."""

    def __init__(self, host: TerminalHost) -> None:
        self.host = host

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.host!r})"

    def start(
        self,
        command: str,
        files: JobFiles,
        options: Options,
    ) -> Handle | None:
        """Open the surface, dock and resize it, then give focus back."""
        host = self.host
        prev_window = host.current_window()

        fragment = wrap_command(command, files, capture=options.log_to_qf)
        surface = host.open_terminal(shell_invocation(fragment))

        # the surface goes away as soon as the user closes its process
        host.on_terminal_close(surface, lambda: self._teardown(surface))

        host.scroll_to_bottom(surface)
        host.move_to_bottom(surface)
        host.resize(surface, max(1, math.floor(options.height * host.lines)))

        if host.is_valid_window(prev_window):
            host.focus(prev_window)

        logger.debug(f"started in {surface!r}: {command}")
        return Handle(host, surface)

    def _teardown(self, surface: t.Any) -> None:
        if self.host.is_terminal(surface):
            self.host.close(surface)


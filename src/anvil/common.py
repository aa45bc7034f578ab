"""Helper methods for talking to tmux.

anvil.common
~~~~~~~~~~~~

"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import typing as t

from . import exc
from .constants import MULTIPLEXER_ENV

if t.TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


class tmux_cmd:
    """Run any :term:`tmux(1)` command through :py:mod:`subprocess`.

    Examples
    --------
    Split the current window, check for error:

    >>> proc = tmux_cmd('split-window', '-d', 'sleep 1')  # doctest: +SKIP
    >>> if proc.stderr:  # doctest: +SKIP
    ...     raise exc.PresentationError(
    ...         'Command: %s returned error: %s' % (proc.cmd, proc.stderr)
    ...     )
    """

    def __init__(self, *args: t.Any) -> None:
        tmux_bin = shutil.which("tmux")
        if not tmux_bin:
            raise exc.TmuxCommandNotFound

        cmd = [tmux_bin]
        cmd += args  # add the command arguments to cmd
        cmd = [str(c) for c in cmd]

        self.cmd = cmd

        try:
            self.process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="backslashreplace",
            )
            stdout, stderr = self.process.communicate()
            returncode = self.process.returncode
        except Exception:
            logger.exception(f"Exception for {subprocess.list2cmdline(cmd)}")
            raise

        self.returncode = returncode

        stdout_split = stdout.split("\n")
        # remove trailing newlines from stdout
        while stdout_split and stdout_split[-1] == "":
            stdout_split.pop()

        self.stdout = stdout_split
        self.stderr = list(filter(None, stderr.split("\n")))  # filter empty values

        logger.debug(
            "self.stdout for {cmd}: {stdout}".format(
                cmd=" ".join(cmd),
                stdout=self.stdout,
            ),
        )


def in_multiplexer(environ: Mapping[str, str] | None = None) -> bool:
    """Return True if this process runs inside a tmux session.

    >>> in_multiplexer({"TMUX": "/tmp/tmux-1000/default,1234,0"})
    True
    >>> in_multiplexer({})
    False
    """
    if environ is None:
        environ = os.environ
    return bool(environ.get(MULTIPLEXER_ENV))


class ServerStatus(t.NamedTuple):
    """Result of :func:`tmux_server_status`."""

    installed: bool
    running: bool
    sessions: list[str]


def tmux_server_status() -> ServerStatus:
    """Return whether tmux is installed and a server is running.

    Equivalent to ``$ tmux list-sessions``.
    """
    try:
        proc = tmux_cmd("list-sessions")
    except exc.TmuxCommandNotFound:
        return ServerStatus(installed=False, running=False, sessions=[])

    if proc.returncode != 0:
        return ServerStatus(installed=True, running=False, sessions=[])
    return ServerStatus(installed=True, running=True, sessions=proc.stdout)

"""anvil pytest plugin."""

from __future__ import annotations

import contextlib
import logging
import subprocess
import typing as t

import pytest

from anvil import exc
from anvil import supervisor as supervisor_module
from anvil.common import tmux_cmd
from anvil.host import QuickfixList, SubprocessHost
from anvil.options import Options, reset_defaults
from anvil.protocol import namer
from anvil.state import job_state
from anvil.supervisor import Supervisor

if t.TYPE_CHECKING:
    import pathlib
    from collections.abc import Generator

logger = logging.getLogger(__name__)

#: Poll timing used by test supervisors
TEST_POLL_SECONDS = 0.05


class RecordingNotifier:
    """Notifier keeping every ``(message, level)`` it was given."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, int]] = []

    def notify(self, message: str, level: int = logging.INFO) -> None:
        """Record ``message``."""
        self.messages.append((message, level))

    @property
    def last(self) -> tuple[str, int] | None:
        """Return the latest notification."""
        return self.messages[-1] if self.messages else None


@pytest.fixture
def clean_defaults(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Restore process-wide defaults, shared supervisor and job state."""
    monkeypatch.setattr(supervisor_module, "_supervisor", None)
    reset_defaults()
    yield
    reset_defaults()
    job_state.release()


@pytest.fixture
def quickfix() -> QuickfixList:
    """Return an empty :class:`anvil.host.QuickfixList`."""
    return QuickfixList()


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Return a :class:`RecordingNotifier`."""
    return RecordingNotifier()


@pytest.fixture
def terminal_host() -> Generator[SubprocessHost, None, None]:
    """Return a quiet :class:`anvil.host.SubprocessHost`.

    Surfaces still open at teardown are closed.
    """
    host = SubprocessHost(stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    yield host
    for surface in list(host.surfaces.values()):
        host.close(surface)


@pytest.fixture
def fast_options() -> Options:
    """Return default options with short poll timing."""
    return Options(delay=TEST_POLL_SECONDS, interval=TEST_POLL_SECONDS)


@pytest.fixture
def supervisor(
    terminal_host: SubprocessHost,
    quickfix: QuickfixList,
    notifier: RecordingNotifier,
    fast_options: Options,
    tmp_path: pathlib.Path,
) -> Supervisor:
    """Return a :class:`anvil.Supervisor` in ``term`` mode writing to ``tmp_path``.

    The environment it sees is empty, so ``mode="auto"`` stays in ``term``.
    """
    return Supervisor(
        host=terminal_host,
        sink=quickfix,
        notifier=notifier,
        defaults=fast_options,
        tmpdir=tmp_path,
        environ={},
    )


@pytest.fixture
def tmux_socket_name() -> Generator[str, None, None]:
    """Return the socket name of a fresh, detached tmux server.

    Skips the test if tmux is not installed.
    """
    socket_name = f"anvil_test{next(namer)}"
    try:
        proc = tmux_cmd(
            f"-L{socket_name}",
            "-f/dev/null",
            "new-session",
            "-d",
            "-x200",
            "-y50",
        )
    except exc.TmuxCommandNotFound:
        pytest.skip("tmux not installed")

    if proc.stderr:
        pytest.skip(f"tmux server failed to start: {proc.stderr}")

    yield socket_name

    with contextlib.suppress(exc.TmuxCommandNotFound):
        tmux_cmd(f"-L{socket_name}", "kill-server")

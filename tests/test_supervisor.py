"""Tests for anvil.Supervisor."""

from __future__ import annotations

import asyncio
import logging
import pathlib
import typing as t

import pytest

import anvil
from anvil import exc
from anvil.host import QuickfixList, SubprocessHost
from anvil.options import Options
from anvil.presentation import TmuxPresentation
from anvil.supervisor import Supervisor
from anvil.test import aretry_until
from anvil.watcher import FilePollingWatcher, JobResult, ProcessWaitWatcher

if t.TYPE_CHECKING:
    from anvil.pytest_plugin import RecordingNotifier


class ExitRecorder:
    """on_exit callback recording its calls."""

    def __init__(self, supervisor: Supervisor | None = None) -> None:
        self.calls: list[tuple[int, Options]] = []
        self.active_during_call: list[bool] = []
        self.supervisor = supervisor

    def __call__(self, code: int, options: Options) -> None:
        self.calls.append((code, options))
        if self.supervisor is not None:
            self.active_during_call.append(self.supervisor.active)


async def finish(future: asyncio.Future[JobResult] | None) -> JobResult:
    """Wait for a started job."""
    assert future is not None
    return await asyncio.wait_for(future, 10)


class EndToEndFixture(t.NamedTuple):
    """Test fixture for test_run_end_to_end()."""

    test_id: str
    command: str
    exit_code: int


END_TO_END_FIXTURES: list[EndToEndFixture] = [
    EndToEndFixture("true", "true", 0),
    EndToEndFixture("false", "false", 1),
    EndToEndFixture("exit_42", "exit 42", 42),
    EndToEndFixture("exit_127", "exit 127", 127),
    EndToEndFixture("exit_255", "exit 255", 255),
]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    list(EndToEndFixture._fields),
    END_TO_END_FIXTURES,
    ids=[test.test_id for test in END_TO_END_FIXTURES],
)
async def test_run_end_to_end(
    test_id: str,
    command: str,
    exit_code: int,
    supervisor: Supervisor,
    tmp_path: pathlib.Path,
) -> None:
    """The callback gets the command's exit code and nothing is left behind."""
    recorder = ExitRecorder(supervisor)
    future = supervisor.run(command, on_exit=recorder)
    assert supervisor.active
    assert supervisor.job is not None
    files = supervisor.job.files

    result = await finish(future)

    assert result.exit_code == exit_code
    assert recorder.calls == [(exit_code, result.options)]
    assert recorder.active_during_call == [True]
    assert not supervisor.active
    assert supervisor.job is None
    assert not any(p.exists() for p in files.paths())
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_run_default_command(supervisor: Supervisor) -> None:
    """Without a command the configured default runs."""
    future = supervisor.run(None, {"command": "exit 8"})
    assert supervisor.job is not None
    assert supervisor.job.command == "exit 8"
    assert (await finish(future)).exit_code == 8


@pytest.mark.asyncio
async def test_run_rejected_while_active(
    supervisor: Supervisor,
    terminal_host: SubprocessHost,
    notifier: RecordingNotifier,
) -> None:
    """A second run is rejected and leaves the first job untouched."""
    first = supervisor.run("sleep 0.3; exit 2")
    job = supervisor.job
    assert job is not None

    second = supervisor.run("exit 0")

    assert second is None
    assert notifier.last == ("A command is already running.", logging.WARNING)
    assert supervisor.active
    assert supervisor.job is job
    assert len(terminal_host.surfaces) == 1

    result = await finish(first)
    assert result.exit_code == 2
    assert not supervisor.active


@pytest.mark.asyncio
async def test_run_accepted_after_completion(supervisor: Supervisor) -> None:
    """Jobs run one after another."""
    assert (await finish(supervisor.run("exit 1"))).exit_code == 1
    assert (await finish(supervisor.run("exit 0"))).exit_code == 0


class CloseMatrixFixture(t.NamedTuple):
    """Test fixture for the auto-close policy."""

    test_id: str
    command: str
    close_on_success: bool
    close_on_error: bool
    closed: bool


CLOSE_MATRIX_FIXTURES: list[CloseMatrixFixture] = [
    CloseMatrixFixture("success_close_on_success", "true", True, False, True),
    CloseMatrixFixture("success_keep_open", "true", False, True, False),
    CloseMatrixFixture("error_close_on_error", "exit 3", False, True, True),
    CloseMatrixFixture("error_keep_open", "exit 3", True, False, False),
]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    list(CloseMatrixFixture._fields),
    CLOSE_MATRIX_FIXTURES,
    ids=[test.test_id for test in CLOSE_MATRIX_FIXTURES],
)
async def test_close_policy(
    test_id: str,
    command: str,
    close_on_success: bool,
    close_on_error: bool,
    closed: bool,
    supervisor: Supervisor,
) -> None:
    """The surface is closed iff the flag matching the outcome is set."""
    future = supervisor.run(
        command,
        close_on_success=close_on_success,
        close_on_error=close_on_error,
    )
    assert supervisor.job is not None
    handle = supervisor.job.handle
    assert handle is not None

    await finish(future)

    assert handle.is_open is not closed


@pytest.mark.asyncio
async def test_close_skips_repurposed_surface(
    supervisor: Supervisor,
    terminal_host: SubprocessHost,
) -> None:
    """A surface that stopped being a terminal is not closed again."""
    future = supervisor.run("sleep 0.2", close_on_success=True)
    assert supervisor.job is not None
    handle = supervisor.job.handle
    assert handle is not None

    closes: list[t.Any] = []
    original_close = terminal_host.close

    def spy_close(surface: t.Any) -> None:
        closes.append(surface)
        original_close(surface)

    terminal_host.close = spy_close  # type: ignore[method-assign]
    handle.surface.closed = True

    await finish(future)
    assert closes == []


@pytest.mark.asyncio
async def test_capture_disabled(
    supervisor: Supervisor,
    quickfix: QuickfixList,
) -> None:
    """Without log_to_qf the output list is never touched."""
    result = await finish(supervisor.run("echo hello", log_to_qf=False))

    assert result.output is None
    assert quickfix.replace_count == 0


@pytest.mark.asyncio
async def test_capture_enabled(
    supervisor: Supervisor,
    quickfix: QuickfixList,
) -> None:
    """With log_to_qf the output list gets every line, in order."""
    future = supervisor.run(
        "echo one; echo two >&2; printf 'three\\nfour\\n'; exit 1",
        log_to_qf=True,
    )
    assert supervisor.job is not None
    log_file = supervisor.job.output_log_file

    result = await finish(future)

    assert result.exit_code == 1
    assert result.output == ["one", "two", "three", "four"]
    assert quickfix.replace_count == 1
    assert quickfix.title == "Command Output"
    assert quickfix.lines == ["one", "two", "three", "four"]
    assert not log_file.exists()


@pytest.mark.asyncio
async def test_capture_missing_log_is_skipped(
    supervisor: Supervisor,
    quickfix: QuickfixList,
) -> None:
    """A log that vanished before completion is silently skipped."""
    future = supervisor.run("sleep 0.2", log_to_qf=True)
    assert supervisor.job is not None
    job = supervisor.job

    await aretry_until(lambda: job.output_log_file.exists(), 5)
    job.output_log_file.unlink()

    result = await finish(future)
    assert result.output is None
    assert quickfix.replace_count == 0


class DefaultOnExitFixture(t.NamedTuple):
    """Test fixture for the default exit handler."""

    test_id: str
    command: str
    overrides: dict[str, t.Any]
    message: str
    level: int
    opened: bool


DEFAULT_ON_EXIT_FIXTURES: list[DefaultOnExitFixture] = [
    DefaultOnExitFixture(
        test_id="success",
        command="true",
        overrides={},
        message="Command: completed successfully.",
        level=logging.INFO,
        opened=False,
    ),
    DefaultOnExitFixture(
        test_id="success_open_qf",
        command="true",
        overrides={"open_qf_on_success": True, "title": "Build"},
        message="Build: completed successfully.",
        level=logging.INFO,
        opened=True,
    ),
    DefaultOnExitFixture(
        test_id="error",
        command="exit 2",
        overrides={"open_qf_on_success": True},
        message="Command: failed with exit code 2.",
        level=logging.ERROR,
        opened=False,
    ),
    DefaultOnExitFixture(
        test_id="error_open_qf",
        command="exit 2",
        overrides={"open_qf_on_error": True},
        message="Command: failed with exit code 2.",
        level=logging.ERROR,
        opened=True,
    ),
]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    list(DefaultOnExitFixture._fields),
    DEFAULT_ON_EXIT_FIXTURES,
    ids=[test.test_id for test in DEFAULT_ON_EXIT_FIXTURES],
)
async def test_default_on_exit(
    test_id: str,
    command: str,
    overrides: dict[str, t.Any],
    message: str,
    level: int,
    opened: bool,
    supervisor: Supervisor,
    quickfix: QuickfixList,
    notifier: RecordingNotifier,
) -> None:
    """The default handler notifies by title and applies the open policy."""
    await finish(supervisor.run(command, overrides))

    assert notifier.last == (message, level)
    assert quickfix.opened is opened


@pytest.mark.asyncio
async def test_failing_callback_still_releases(supervisor: Supervisor) -> None:
    """An exception in on_exit does not leave the job active."""

    def on_exit(code: int, options: Options) -> None:
        msg = "boom"
        raise RuntimeError(msg)

    result = await finish(supervisor.run("exit 4", on_exit=on_exit))

    assert result.exit_code == 4
    assert not supervisor.active


@pytest.mark.asyncio
async def test_unknown_option_has_no_side_effects(
    supervisor: Supervisor,
    terminal_host: SubprocessHost,
    tmp_path: pathlib.Path,
) -> None:
    """Bad overrides raise before anything starts."""
    with pytest.raises(exc.UnknownOption):
        supervisor.run("true", colour="red")

    assert not supervisor.active
    assert terminal_host.surfaces == {}
    assert list(tmp_path.iterdir()) == []


class FailingTmux:
    """Presentation failing to start."""

    def __init__(self) -> None:
        self.started = 0

    def start(self, command: str, files: t.Any, options: Options) -> None:
        self.started += 1
        msg = "tmux split-window failed: no space for new pane"
        raise exc.PresentationError(msg)


@pytest.mark.asyncio
async def test_failed_start_releases(
    terminal_host: SubprocessHost,
    quickfix: QuickfixList,
    notifier: RecordingNotifier,
    fast_options: Options,
    tmp_path: pathlib.Path,
) -> None:
    """A presentation error propagates and frees the job state."""
    tmux = FailingTmux()
    supervisor = Supervisor(
        host=terminal_host,
        sink=quickfix,
        notifier=notifier,
        defaults=fast_options,
        tmpdir=tmp_path,
        tmux=tmux,
        environ={"TMUX": "/tmp/tmux-1000/default,1,0"},
    )

    with pytest.raises(exc.PresentationError):
        supervisor.run("true", mode="auto")

    assert tmux.started == 1
    assert not supervisor.active
    assert terminal_host.surfaces == {}
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_term_mode_ignores_tmux(
    terminal_host: SubprocessHost,
    fast_options: Options,
    tmp_path: pathlib.Path,
) -> None:
    """``term`` mode uses a terminal surface even inside tmux."""
    tmux = FailingTmux()
    supervisor = Supervisor(
        host=terminal_host,
        defaults=fast_options,
        tmpdir=tmp_path,
        tmux=tmux,
        environ={"TMUX": "/tmp/tmux-1000/default,1,0"},
    )

    result = await finish(supervisor.run("exit 5", mode="term"))

    assert result.exit_code == 5
    assert tmux.started == 0


@pytest.mark.asyncio
async def test_tmux_mode(
    tmux_socket_name: str,
    quickfix: QuickfixList,
    fast_options: Options,
    tmp_path: pathlib.Path,
) -> None:
    """Inside tmux, ``auto`` mode runs in a pane and has no handle."""
    recorder = ExitRecorder()
    supervisor = Supervisor(
        sink=quickfix,
        defaults=fast_options,
        tmpdir=tmp_path,
        tmux=TmuxPresentation(socket_name=tmux_socket_name),
        environ={"TMUX": "/tmp/tmux-1000/default,1,0"},
    )

    future = supervisor.run(
        "echo from tmux; exit 42",
        mode="auto",
        log_to_qf=True,
        on_exit=recorder,
    )
    assert supervisor.job is not None
    assert supervisor.job.handle is None

    result = await finish(future)

    assert result.exit_code == 42
    assert recorder.calls == [(42, result.options)]
    assert quickfix.lines == ["from tmux"]
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_native_watcher(supervisor: Supervisor) -> None:
    """watcher="native" waits on the surface's process."""
    future = supervisor.run("exit 7", watcher="native")
    assert supervisor.job is not None
    assert isinstance(supervisor.job.watcher, ProcessWaitWatcher)

    assert (await finish(future)).exit_code == 7


@pytest.mark.asyncio
async def test_polling_watcher_is_default(supervisor: Supervisor) -> None:
    """Polling is used unless asked otherwise."""
    future = supervisor.run("true")
    assert supervisor.job is not None
    assert isinstance(supervisor.job.watcher, FilePollingWatcher)
    await finish(future)


@pytest.mark.asyncio
async def test_timeout(
    supervisor: Supervisor,
    notifier: RecordingNotifier,
    tmp_path: pathlib.Path,
) -> None:
    """With a timeout a job that never reports is given up on and stopped."""
    recorder = ExitRecorder()
    future = supervisor.run("sleep 30", timeout=0.2, on_exit=recorder)
    assert supervisor.job is not None
    handle = supervisor.job.handle
    assert handle is not None

    with pytest.raises(exc.CompletionTimeout):
        await finish(future)

    assert not supervisor.active
    assert not handle.is_open
    assert not handle.surface.running
    assert recorder.calls == []
    assert notifier.last == (
        "Command: no exit code after 0.2 seconds.",
        logging.ERROR,
    )
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_timeout_leaves_one_job_running(
    supervisor: Supervisor,
    terminal_host: SubprocessHost,
) -> None:
    """After a timeout the next job is the only one running."""
    first = supervisor.run("sleep 0.6", timeout=0.2)
    assert supervisor.job is not None
    first_handle = supervisor.job.handle
    assert first_handle is not None

    with pytest.raises(exc.CompletionTimeout):
        await finish(first)

    second = supervisor.run("sleep 0.1; exit 3")
    assert second is not None
    assert supervisor.job is not None
    second_handle = supervisor.job.handle
    assert second_handle is not None

    assert not first_handle.surface.running
    running = [s for s in terminal_host.surfaces.values() if s.running]
    assert running == [second_handle.surface]
    assert (await finish(second)).exit_code == 3


@pytest.mark.asyncio
async def test_timeout_stops_whole_process_group(
    supervisor: Supervisor,
    tmp_path: pathlib.Path,
) -> None:
    """Children of the command are stopped along with the shell."""
    marker = tmp_path / "survivor"
    future = supervisor.run(f"sleep 1; touch {marker}", timeout=0.2)

    with pytest.raises(exc.CompletionTimeout):
        await finish(future)

    await asyncio.sleep(1.3)
    assert not marker.exists()


@pytest.mark.asyncio
async def test_native_watcher_timeout(supervisor: Supervisor) -> None:
    """The native watcher's blocking wait returns once the job is stopped."""
    future = supervisor.run("sleep 30", watcher="native", timeout=0.2)
    assert supervisor.job is not None
    handle = supervisor.job.handle
    assert handle is not None

    with pytest.raises(exc.CompletionTimeout):
        await finish(future)

    loop = asyncio.get_running_loop()
    status = await asyncio.wait_for(loop.run_in_executor(None, handle.wait), 5)
    assert status != 0


@pytest.mark.asyncio
async def test_cancel(supervisor: Supervisor, tmp_path: pathlib.Path) -> None:
    """cancel() stops the job and frees the supervisor."""
    assert not supervisor.cancel()

    future = supervisor.run("sleep 30")
    assert supervisor.job is not None
    handle = supervisor.job.handle
    assert handle is not None

    assert supervisor.cancel()

    assert future is not None
    assert future.cancelled()
    assert not supervisor.active
    assert supervisor.job is None
    assert not handle.surface.running
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_orphaned_job_stays_active(
    supervisor: Supervisor,
    terminal_host: SubprocessHost,
) -> None:
    """A job killed before reporting keeps the supervisor busy."""
    future = supervisor.run("sleep 30")
    job = supervisor.job
    assert job is not None
    assert job.handle is not None
    assert job.watcher is not None

    terminal_host.kill(job.handle.surface)
    assert not job.handle.is_open

    await asyncio.sleep(0.3)
    assert supervisor.active
    assert job.watcher.active
    assert future is not None
    assert not future.done()
    assert supervisor.run("true") is None

    job.watcher.stop()
    supervisor.state.release()


@pytest.mark.asyncio
async def test_module_level_run(tmp_path: pathlib.Path) -> None:
    """setup() seeds defaults used by anvil.run()."""
    host = SubprocessHost()
    sink = QuickfixList()
    shared = anvil.setup(
        host=host,
        sink=sink,
        delay=0.05,
        interval=0.05,
        log_to_qf=True,
        title="Shared",
    )
    shared.tmpdir = tmp_path
    assert anvil.get_supervisor() is shared

    future = anvil.run("echo shared")
    assert anvil.is_running()

    result = await finish(future)

    assert result.exit_code == 0
    assert result.options.title == "Shared"
    assert sink.lines == ["shared"]
    assert not anvil.is_running()

"""Run one command at a time and report back when it finishes.

anvil.supervisor
~~~~~~~~~~~~~~~~

:meth:`Supervisor.run` never blocks: it starts the command in a tmux pane or
a terminal surface, arms a completion watcher on the event loop and returns a
future resolved with the :class:`~anvil.watcher.JobResult`. A second
:meth:`~Supervisor.run` while a job is active is rejected with a warning.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import typing as t

from . import exc
from .constants import OUTPUT_TITLE, Watcher
from .host import LogNotifier, QuickfixList, SubprocessHost
from .options import (
    get_defaults,
    merge_options,
    set_defaults,
    should_use_multiplexer,
)
from .presentation import TerminalPresentation, TmuxPresentation
from .protocol import JobFiles, read_output_lines, remove_quietly
from .state import JobState, job_state
from .watcher import (
    CompletionWatcher,
    FilePollingWatcher,
    JobResult,
    ProcessWaitWatcher,
    should_close,
)

if t.TYPE_CHECKING:
    import pathlib
    from collections.abc import Mapping

    from .host import Notifier, OutputSink, TerminalHost
    from .options import Options
    from .presentation import Handle, Presentation

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class Job:
    """The job currently run by a :class:`Supervisor`."""

    command: str
    files: JobFiles
    options: Options
    future: asyncio.Future[JobResult]
    handle: Handle | None = None
    watcher: CompletionWatcher | None = None

    @property
    def exit_code_file(self) -> pathlib.Path:
        """Return the path the exit code is reported through."""
        return self.files.exit_code_file

    @property
    def output_log_file(self) -> pathlib.Path:
        """Return the path output is captured to."""
        return self.files.output_log_file


class Supervisor:
    """Start commands and handle their completion, one job at a time.

    Parameters
    ----------
    host : :class:`~anvil.host.TerminalHost`, optional
        Terminal surfaces for ``term`` mode, :class:`SubprocessHost` by default.
    sink : :class:`~anvil.host.OutputSink`, optional
        Receives captured output, :class:`QuickfixList` by default.
    notifier : :class:`~anvil.host.Notifier`, optional
        User-facing messages, :class:`LogNotifier` by default.
    state : :class:`~anvil.state.JobState`, optional
        Claimed for the duration of a job.
    defaults : :class:`~anvil.options.Options`, optional
        Options runs are merged over, the process-wide defaults by default.
    loop : :class:`asyncio.AbstractEventLoop`, optional
        Loop the watcher runs on, the running loop by default.
    tmpdir : str or PathLike, optional
        Directory for side-channel files.
    tmux : :class:`~anvil.presentation.TmuxPresentation`, optional
        Strategy used when running inside tmux.
    environ : mapping, optional
        Environment inspected for the tmux marker, :data:`os.environ` by default.

    Examples
    --------
    >>> async def build():
    ...     supervisor = Supervisor(host=SubprocessHost())
    ...     future = supervisor.run("exit 3", delay=0.05, interval=0.05)
    ...     return (await future).exit_code
    >>> asyncio.run(build())
    3
    """

    def __init__(
        self,
        host: TerminalHost | None = None,
        sink: OutputSink | None = None,
        notifier: Notifier | None = None,
        state: JobState | None = None,
        defaults: Options | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        tmpdir: str | pathlib.Path | None = None,
        tmux: Presentation | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.host = host if host is not None else SubprocessHost()
        self.sink = sink if sink is not None else QuickfixList()
        self.notifier = notifier if notifier is not None else LogNotifier()
        self.state = state if state is not None else JobState()
        self._defaults = defaults
        self.loop = loop
        self.tmpdir = tmpdir
        self.tmux = tmux if tmux is not None else TmuxPresentation()
        self.terminal = TerminalPresentation(self.host)
        self.environ = environ
        self.job: Job | None = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(host={self.host!r}, active={self.active})"

    @property
    def active(self) -> bool:
        """Return True while a job is running."""
        return self.state.active

    @property
    def defaults(self) -> Options:
        """Return the options runs are merged over."""
        if self._defaults is not None:
            return self._defaults
        return get_defaults()

    def resolve(
        self,
        options: Mapping[str, t.Any] | None = None,
        **overrides: t.Any,
    ) -> Options:
        """Return the defaults with ``options`` and ``overrides`` applied."""
        resolved = merge_options(self.defaults, options)
        return merge_options(resolved, overrides)

    def presentation_for(self, options: Options) -> Presentation:
        """Return the strategy ``options`` select."""
        if should_use_multiplexer(options, self.environ):
            return self.tmux
        return self.terminal

    def run(
        self,
        command: str | None = None,
        options: Mapping[str, t.Any] | None = None,
        **overrides: t.Any,
    ) -> asyncio.Future[JobResult] | None:
        """Start ``command``, ``options.command`` if omitted.

        Parameters
        ----------
        command : str, optional
            Shell command line, run as is.
        options : mapping, optional
            Option overrides, see :class:`~anvil.options.Options`.
        **overrides
            More option overrides, applied after ``options``.

        Returns
        -------
        :class:`asyncio.Future` or None
            Resolves with the :class:`~anvil.watcher.JobResult`, or fails
            with :exc:`~anvil.exc.CompletionTimeout`. ``None`` if the run was
            rejected because a job is already active.

        Raises
        ------
        :exc:`exc.UnknownOption`
        :exc:`exc.PresentationError`
        :exc:`exc.TmuxCommandNotFound`
        """
        if self.state.active:
            self.notifier.notify("A command is already running.", logging.WARNING)
            return None

        resolved = self.resolve(options, **overrides)
        loop = self.loop if self.loop is not None else asyncio.get_running_loop()
        if not command:
            command = resolved.command

        files = JobFiles.create(self.tmpdir)
        self.state.acquire()

        try:
            presentation = self.presentation_for(resolved)
            handle = presentation.start(command, files, resolved)
        except Exception:
            files.cleanup()
            self.state.release()
            raise

        job = Job(
            command=command,
            files=files,
            options=resolved,
            future=loop.create_future(),
            handle=handle,
        )
        job.watcher = self._watcher_for(job, loop)
        self.job = job
        job.watcher.start(
            on_complete=lambda exit_code: self._complete(job, exit_code),
            on_timeout=lambda: self._expire(job),
        )

        logger.info(f"started: {command}")
        return job.future

    def _watcher_for(
        self,
        job: Job,
        loop: asyncio.AbstractEventLoop,
    ) -> CompletionWatcher:
        options = job.options
        if (
            options.watcher == Watcher.Native
            and job.handle is not None
            and job.handle.can_wait
        ):
            return ProcessWaitWatcher(
                loop,
                job.files,
                job.handle,
                timeout=options.timeout,
            )
        return FilePollingWatcher(
            loop,
            job.files,
            delay=options.delay,
            interval=options.interval,
            timeout=options.timeout,
        )

    def _complete(self, job: Job, exit_code: int) -> None:
        options = job.options
        output: list[str] | None = None
        try:
            if options.log_to_qf:
                output = read_output_lines(job.output_log_file)
                remove_quietly(job.output_log_file)
                if output is not None:
                    self.sink.replace(OUTPUT_TITLE, output)

            if job.handle is not None and should_close(exit_code, options):
                job.handle.close()

            on_exit = options.on_exit if options.on_exit is not None else self.on_exit
            try:
                on_exit(exit_code, options)
            except Exception:
                logger.exception(f"on_exit callback failed for {job.command!r}")

            if not job.future.done():
                job.future.set_result(JobResult(exit_code, output, options))
        finally:
            job.files.cleanup()
            self.job = None
            self.state.release()

    def _expire(self, job: Job) -> None:
        timeout = job.options.timeout or 0.0
        try:
            self.notifier.notify(
                f"{job.options.title}: no exit code after {timeout:g} seconds.",
                logging.ERROR,
            )
            if not job.future.done():
                job.future.set_exception(exc.CompletionTimeout(timeout))
        finally:
            self._abandon(job)

    def cancel(self) -> bool:
        """Stop the active job, terminating its surface.

        tmux panes are not owned by anvil and keep running.

        Returns
        -------
        bool
            True if a job was active.
        """
        job = self.job
        if job is None:
            return False
        if job.watcher is not None:
            job.watcher.stop()
        if not job.future.done():
            job.future.cancel()
        self._abandon(job)
        logger.info(f"cancelled: {job.command}")
        return True

    def _abandon(self, job: Job) -> None:
        try:
            if job.handle is not None:
                job.handle.close()
        finally:
            job.files.cleanup()
            self.job = None
            self.state.release()

    def on_exit(self, exit_code: int, options: Options) -> None:
        """Notify the result and open the output list if configured."""
        if exit_code == 0:
            self.notifier.notify(
                f"{options.title}: completed successfully.",
                logging.INFO,
            )
            if options.open_qf_on_success:
                self.sink.open()
        else:
            self.notifier.notify(
                f"{options.title}: failed with exit code {exit_code}.",
                logging.ERROR,
            )
            if options.open_qf_on_error:
                self.sink.open()


_supervisor: Supervisor | None = None


def setup(
    host: TerminalHost | None = None,
    sink: OutputSink | None = None,
    notifier: Notifier | None = None,
    **defaults: t.Any,
) -> Supervisor:
    """Seed the process-wide defaults and create the shared supervisor.

    Call once while the host initializes. ``defaults`` are option overrides,
    see :class:`~anvil.options.Options`.
    """
    global _supervisor
    set_defaults(**defaults)
    _supervisor = Supervisor(host=host, sink=sink, notifier=notifier, state=job_state)
    return _supervisor


def get_supervisor() -> Supervisor:
    """Return the shared supervisor, creating one with defaults if needed."""
    global _supervisor
    if _supervisor is None:
        _supervisor = Supervisor(state=job_state)
    return _supervisor


def run(
    command: str | None = None,
    **overrides: t.Any,
) -> asyncio.Future[JobResult] | None:
    """Run ``command`` on the shared supervisor, see :meth:`Supervisor.run`."""
    return get_supervisor().run(command, overrides)


def is_running() -> bool:
    """Return True while a job of the shared supervisor is active."""
    return job_state.active

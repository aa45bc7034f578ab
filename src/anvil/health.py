"""Diagnostics for anvil.

anvil.health
~~~~~~~~~~~~

:func:`check` reports the resolved configuration, whether a tmux server can
be used and whether a job is currently running.
"""

from __future__ import annotations

import dataclasses
import logging
import typing as t

from .common import tmux_server_status
from .options import should_use_multiplexer
from .supervisor import get_supervisor

if t.TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from .common import ServerStatus
    from .supervisor import Supervisor

logger = logging.getLogger(__name__)

INFO = "info"
OK = "ok"
WARN = "warn"


@dataclasses.dataclass
class HealthSection:
    """Named group of ``(level, message)`` entries."""

    name: str
    entries: list[tuple[str, str]] = dataclasses.field(default_factory=list)

    def info(self, message: str) -> None:
        """Add an informational entry."""
        self.entries.append((INFO, message))

    def ok(self, message: str) -> None:
        """Add a passing entry."""
        self.entries.append((OK, message))

    def warn(self, message: str) -> None:
        """Add a warning."""
        self.entries.append((WARN, message))


@dataclasses.dataclass
class HealthReport:
    """Sections produced by :func:`check`.

    >>> report = HealthReport([HealthSection("job state", [(OK, "no job running")])])
    >>> print(report.render())
    job state
      OK: no job running
    >>> report.ok
    True
    """

    sections: list[HealthSection] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return True if no section has a warning."""
        return not any(
            level == WARN for section in self.sections for level, _ in section.entries
        )

    def render(self) -> str:
        """Return the report as indented text."""
        lines: list[str] = []
        for section in self.sections:
            lines.append(section.name)
            lines.extend(
                f"  {level.upper()}: {message}" for level, message in section.entries
            )
        return "\n".join(lines)


def _flag(value: bool) -> str:
    return "true" if value else "false"


def check(
    supervisor: Supervisor | None = None,
    environ: Mapping[str, str] | None = None,
    server_status: Callable[[], ServerStatus] = tmux_server_status,
) -> HealthReport:
    """Return a :class:`HealthReport` for ``supervisor``, the shared one by default."""
    if supervisor is None:
        supervisor = get_supervisor()
    options = supervisor.defaults

    config = HealthSection("configuration")
    config.info(f"mode:                  '{options.mode}'")
    config.info(
        f"is tmux enabled:       `{_flag(should_use_multiplexer(options, environ))}`",
    )
    config.info(f"notification title:    '{options.title}'")
    config.info(f"log to qf:             `{_flag(options.log_to_qf)}`")
    config.info(f"open qfix on success:  `{_flag(options.open_qf_on_success)}`")
    config.info(f"open qfix on error:    `{_flag(options.open_qf_on_error)}`")
    config.info(f"close term on success: `{_flag(options.close_on_success)}`")
    config.info(f"close term on error:   `{_flag(options.close_on_error)}`")

    tmux = HealthSection("tmux server")
    status = server_status()
    if not status.installed:
        tmux.info("Install tmux to enable tmux integration.")
    elif not status.running:
        tmux.info("Start tmux server to enable tmux integration.")
    else:
        tmux.info("tmux server running")
        tmux.info(f"sessions: {status.sessions}")

    job = HealthSection("job state")
    if supervisor.active:
        job.warn("job is currently running")
    else:
        job.ok("no job running")

    return HealthReport([config, tmux, job])

"""Command line surface of anvil.

anvil.cli
~~~~~~~~~

.. code-block:: console

    $ anvil make -j8 test log_to_qf=true close_on_success=yes

Tokens of the form ``key=value`` naming an option are taken as option
overrides, everything else is joined with spaces into the command line.
``on_exit`` cannot be given as text, ``on_exit=...`` stays in the command.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import re
import typing as t

from . import exc
from .__about__ import __version__
from .constants import Mode
from .health import check
from .options import TEXT_OPTION_KEYS, coerce_option, should_use_multiplexer
from .supervisor import get_supervisor

if t.TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

KEY_VALUE_RE = re.compile(r"^([^=]+)=([^=]+)$")


def parse_command_args(
    args: Sequence[str],
) -> tuple[str | None, dict[str, t.Any]]:
    """Split ``args`` into a command line and option overrides.

    No quoting is done, each argument is used as written.

    Examples
    --------
    >>> parse_command_args(["make", "-j8", "log_to_qf=true"])
    ('make -j8', {'log_to_qf': True})
    >>> parse_command_args(["make", "CFLAGS=-O2"])
    ('make CFLAGS=-O2', {})
    >>> parse_command_args(["make", "on_exit=notify"])
    ('make on_exit=notify', {})
    >>> parse_command_args([])
    (None, {})
    """
    targets: list[str] = []
    overrides: dict[str, t.Any] = {}

    for arg in args:
        match = KEY_VALUE_RE.match(arg)
        if match is not None and match.group(1) in TEXT_OPTION_KEYS:
            key, value = match.groups()
            overrides[key] = coerce_option(key, value)
        else:
            targets.append(arg)

    command = " ".join(targets) if targets else None
    return command, overrides


def create_parser() -> argparse.ArgumentParser:
    """Return the ``anvil`` argument parser."""
    parser = argparse.ArgumentParser(
        prog="anvil",
        description="Run a command asynchronously and report its exit code.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-m",
        "--mode",
        choices=[m.value for m in Mode],
        help="run in a tmux pane when inside tmux (auto) or in a terminal (term)",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        help="print diagnostics and exit",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="log job lifecycle to stderr",
    )
    parser.add_argument(
        "args",
        nargs=argparse.REMAINDER,
        help="command to run and key=value options, 'make' if empty",
    )
    return parser


async def run_command(command: str | None, overrides: dict[str, t.Any]) -> int:
    """Run ``command`` on the shared supervisor and wait for its exit code.

    Captured output is printed only for tmux panes, a terminal surface already
    writes to this process' stdout.
    """
    supervisor = get_supervisor()
    future = supervisor.run(command, overrides)
    if future is None:
        return 1

    try:
        result = await future
    except asyncio.CancelledError:
        supervisor.cancel()
        raise

    if result.output is not None and should_use_multiplexer(
        result.options,
        supervisor.environ,
    ):
        for line in result.output:
            print(line)
    return result.exit_code


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the ``anvil`` command."""
    parser = create_parser()
    ns = parser.parse_args(argv)

    if ns.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
        )
    else:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    if ns.health:
        report = check()
        print(report.render())
        return 0 if report.ok else 1

    try:
        command, overrides = parse_command_args(ns.args)
    except ValueError as e:
        parser.error(str(e))

    if ns.mode is not None:
        overrides.setdefault("mode", ns.mode)

    try:
        return asyncio.run(run_command(command, overrides))
    except exc.AnvilException as e:
        logger.error(f"anvil: {e}")
        return 1
    except KeyboardInterrupt:
        return 130

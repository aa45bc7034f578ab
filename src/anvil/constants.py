"""Constant variables for anvil."""

from __future__ import annotations

import enum
import os


class Mode(str, enum.Enum):
    """Presentation mode selector, see :func:`anvil.options.should_use_multiplexer`."""

    Auto = "auto"
    Term = "term"


class Watcher(str, enum.Enum):
    """Completion detection strategy."""

    Poll = "poll"
    Native = "native"


#: Environment variable tmux sets for processes running inside a session
MULTIPLEXER_ENV = "TMUX"

#: Command run when none is given
DEFAULT_COMMAND = "make"

#: Title shown in notifications
DEFAULT_TITLE = "Command"

#: Title of the output list filled from the captured log
OUTPUT_TITLE = "Command Output"

#: Share of the host height (or tmux window) given to the command
DEFAULT_HEIGHT = 0.3

#: Seconds before the first check for the exit-code file.
#: Can be configured via :envvar:`ANVIL_POLL_DELAY`
POLL_DELAY_SECONDS = float(os.getenv("ANVIL_POLL_DELAY", 0.5))

#: Seconds between checks for the exit-code file.
#: Can be configured via :envvar:`ANVIL_POLL_INTERVAL`
POLL_INTERVAL_SECONDS = float(os.getenv("ANVIL_POLL_INTERVAL", 0.5))

#: Suffixes of the side-channel files
EXIT_CODE_SUFFIX = ".ret"
OUTPUT_LOG_SUFFIX = ".log"
PARTIAL_SUFFIX = ".part"

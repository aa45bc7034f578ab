"""anvil, run build and shell commands asynchronously in tmux or a terminal split."""

from .__about__ import (
    __author__,
    __copyright__,
    __description__,
    __email__,
    __license__,
    __package_name__,
    __title__,
    __version__,
)
from .host import LogNotifier, QuickfixList, SubprocessHost
from .options import Options, should_use_multiplexer
from .state import JobState
from .supervisor import Supervisor, get_supervisor, is_running, run, setup
from .watcher import JobResult

__all__ = (
    "JobResult",
    "JobState",
    "LogNotifier",
    "Options",
    "QuickfixList",
    "SubprocessHost",
    "Supervisor",
    "__author__",
    "__copyright__",
    "__description__",
    "__email__",
    "__license__",
    "__package_name__",
    "__title__",
    "__version__",
    "get_supervisor",
    "is_running",
    "run",
    "setup",
    "should_use_multiplexer",
)

"""Options for anvil runs.

anvil.options
~~~~~~~~~~~~~

Every run resolves one immutable :class:`Options` from the process-wide
defaults and the caller's overrides. Defaults are seeded once by
:func:`anvil.setup` and read thereafter.

>>> opts = merge_options(Options(), {"title": "Build", "log_to_qf": True})
>>> opts.title, opts.log_to_qf, opts.mode
('Build', True, 'term')
"""

from __future__ import annotations

import dataclasses
import logging
import typing as t

from . import exc
from .common import in_multiplexer
from .constants import (
    DEFAULT_COMMAND,
    DEFAULT_HEIGHT,
    DEFAULT_TITLE,
    POLL_DELAY_SECONDS,
    POLL_INTERVAL_SECONDS,
    Mode,
    Watcher,
)

if t.TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    ExitCallback = Callable[[int, "Options"], None]

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Options:
    """Resolved options of a single run.

    Attributes
    ----------
    mode : str
        ``"auto"`` runs in a tmux pane when anvil itself runs inside tmux,
        ``"term"`` always uses a terminal surface of the host.
    log_to_qf : bool
        Capture merged stdout/stderr and forward it to the output list.
    open_qf_on_success, open_qf_on_error : bool
        Open the output list after the default exit handler notified.
    close_on_success, close_on_error : bool
        Close the terminal surface when the command finished.
    title : str
        Title used in notifications.
    on_exit : callable, optional
        ``on_exit(code, options)``. ``None`` selects the supervisor's default
        handler.
    command : str
        Command run when :meth:`Supervisor.run` gets none.
    delay, interval : float
        Seconds before the first and between subsequent exit-code checks.
    height : float
        Share of the host height given to the pane or surface.
    timeout : float, optional
        Give up waiting after this many seconds. ``None`` waits forever.
    watcher : str
        ``"poll"`` or ``"native"``.
    """

    mode: str = Mode.Term.value
    log_to_qf: bool = False
    open_qf_on_success: bool = False
    open_qf_on_error: bool = False
    close_on_success: bool = False
    close_on_error: bool = False
    title: str = DEFAULT_TITLE
    on_exit: ExitCallback | None = None
    command: str = DEFAULT_COMMAND
    delay: float = POLL_DELAY_SECONDS
    interval: float = POLL_INTERVAL_SECONDS
    height: float = DEFAULT_HEIGHT
    timeout: float | None = None
    watcher: str = Watcher.Poll.value


#: Every key :func:`merge_options` accepts
OPTION_KEYS: frozenset[str] = frozenset(f.name for f in dataclasses.fields(Options))

#: Keys :func:`coerce_option` can convert from text
TEXT_OPTION_KEYS: frozenset[str] = OPTION_KEYS - {"on_exit"}

BOOL_KEYS = frozenset(
    {
        "log_to_qf",
        "open_qf_on_success",
        "open_qf_on_error",
        "close_on_success",
        "close_on_error",
    },
)
FLOAT_KEYS = frozenset({"delay", "interval", "height", "timeout"})

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def merge_options(
    base: Options,
    overrides: Mapping[str, t.Any] | None = None,
) -> Options:
    """Return a new :class:`Options` with ``overrides`` applied over ``base``.

    Keys mapped to ``None`` inherit from ``base``.

    Raises
    ------
    :exc:`exc.UnknownOption`
        An override key is not an option.

    Examples
    --------
    >>> base = Options(close_on_error=True)
    >>> merged = merge_options(base, {"close_on_error": None, "mode": "auto"})
    >>> merged.close_on_error, merged.mode
    (True, 'auto')
    >>> base.mode
    'term'
    """
    if not overrides:
        return base

    changes: dict[str, t.Any] = {}
    for key, value in overrides.items():
        if key not in OPTION_KEYS:
            raise exc.UnknownOption(key)
        if value is None:
            continue
        changes[key] = value

    return dataclasses.replace(base, **changes)


def coerce_option(key: str, value: str) -> t.Any:
    """Convert a textual ``key=value`` value to the option's type.

    >>> coerce_option("log_to_qf", "yes")
    True
    >>> coerce_option("interval", "0.25")
    0.25
    >>> coerce_option("title", "Tests")
    'Tests'

    Raises
    ------
    :exc:`exc.UnknownOption`
        ``key`` is not an option.
    ValueError
        ``value`` does not fit the option, or the option takes no text.
    """
    if key not in OPTION_KEYS:
        raise exc.UnknownOption(key)
    if key not in TEXT_OPTION_KEYS:
        msg = f"{key} cannot be set from text"
        raise ValueError(msg)

    if key in BOOL_KEYS:
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        msg = f"{key} expects a boolean, got {value!r}"
        raise ValueError(msg)

    if key in FLOAT_KEYS:
        if key == "timeout" and value.strip().lower() in {"", "none"}:
            return None
        return float(value)

    return value


_defaults = Options()


def get_defaults() -> Options:
    """Return the process-wide default options."""
    return _defaults


def set_defaults(**overrides: t.Any) -> Options:
    """Replace the process-wide defaults, merging ``overrides`` over them."""
    global _defaults
    _defaults = merge_options(_defaults, overrides)
    logger.debug(f"defaults set: {_defaults}")
    return _defaults


def reset_defaults() -> Options:
    """Restore the built-in defaults."""
    global _defaults
    _defaults = Options()
    return _defaults


def should_use_multiplexer(
    options: Options,
    environ: Mapping[str, str] | None = None,
) -> bool:
    """Return True if the run should go to a tmux pane.

    Parameters
    ----------
    options : :class:`Options`
    environ : mapping, optional
        Environment to inspect, defaults to :data:`os.environ`.

    Examples
    --------
    >>> should_use_multiplexer(Options(mode="auto"), {"TMUX": "/tmp/tmux-0/default"})
    True
    >>> should_use_multiplexer(Options(mode="auto"), {})
    False
    >>> should_use_multiplexer(Options(mode="term"), {"TMUX": "/tmp/tmux-0/default"})
    False
    """
    if options.mode != Mode.Auto:
        return False
    return in_multiplexer(environ)

"""Provide exceptions used by anvil.

anvil.exc
~~~~~~~~~

Notes
-----
Exceptions in this module inherit from :exc:`AnvilException`. Only
infrastructure failures are raised to callers; a rejected start, an unreadable
exit code and a missing output log are reported through notifications or
handled silently by the supervisor.
"""

from __future__ import annotations


class AnvilException(Exception):
    """Base exception for all anvil errors."""


class JobAlreadyRunning(AnvilException):
    """Raised when a job is started while another one is still active."""

    def __init__(self, *args: object) -> None:
        super().__init__("A command is already running.")


class TmuxCommandNotFound(AnvilException):
    """Raised when the tmux binary cannot be found on the system."""


class PresentationError(AnvilException):
    """Raised when a pane or terminal surface could not be started."""


class CompletionTimeout(AnvilException):
    """Raised when a job's exit code did not appear within the timeout."""

    def __init__(self, timeout: float, *args: object) -> None:
        super().__init__(f"No exit code after {timeout:g} seconds")
        self.timeout = timeout


class UnknownOption(AnvilException, KeyError):
    """Raised if an option key is not recognized."""

    def __init__(self, key: str, *args: object) -> None:
        super().__init__(f"Unknown option: {key}")
        self.key = key

    def __str__(self) -> str:
        return str(self.args[0])


class WaitTimeout(AnvilException):
    """Raised when a function times out waiting for a condition."""

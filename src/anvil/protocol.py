"""Exit-code side channel for anvil jobs.

anvil.protocol
~~~~~~~~~~~~~~

A job cannot be waited on directly when it runs in a tmux pane, so the shell
fragment wrapping the command reports back through two files:

- the *exit-code file* holds the decimal exit status of the command. It is
  written through file descriptor 3 into a ``.part`` file and renamed once
  the whole pipeline finished, so it only ever appears complete.
- the *output log* holds merged stdout and stderr, written by ``tee`` when
  output capture is enabled.

Both are created by the child shell and deleted by whoever consumes them.
"""

from __future__ import annotations

import contextlib
import dataclasses
import logging
import pathlib
import random
import shlex
import tempfile
import typing as t

from .constants import EXIT_CODE_SUFFIX, OUTPUT_LOG_SUFFIX, PARTIAL_SUFFIX

if t.TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

#: Prefix of side-channel file names
FILE_PREFIX = "anvil_"


class RandomStrSequence:
    """Factory to generate random strings, 8 chars in length.

    >>> rng = RandomStrSequence()
    >>> len(next(rng))
    8
    """

    def __init__(
        self,
        characters: str = "abcdefghijklmnopqrstuvwxyz0123456789_",
    ) -> None:
        self.characters: str = characters

    def __iter__(self) -> Iterator[str]:
        """Return self."""
        return self

    def __next__(self) -> str:
        """Return next random string."""
        return "".join(random.sample(self.characters, k=8))


namer = RandomStrSequence()


@dataclasses.dataclass(frozen=True)
class JobFiles:
    """Paths of one job's side-channel files."""

    exit_code_file: pathlib.Path
    output_log_file: pathlib.Path

    @classmethod
    def create(cls, tmpdir: str | pathlib.Path | None = None) -> JobFiles:
        """Return fresh, unused paths in ``tmpdir`` (system temp by default)."""
        base = pathlib.Path(tmpdir if tmpdir is not None else tempfile.gettempdir())
        while True:
            stem = base / f"{FILE_PREFIX}{next(namer)}"
            files = cls(
                exit_code_file=stem.with_suffix(EXIT_CODE_SUFFIX),
                output_log_file=stem.with_suffix(OUTPUT_LOG_SUFFIX),
            )
            if not any(p.exists() for p in files.paths()):
                return files

    @property
    def partial_exit_code_file(self) -> pathlib.Path:
        """Path fd 3 writes to before the final rename."""
        return self.exit_code_file.with_name(
            self.exit_code_file.name + PARTIAL_SUFFIX,
        )

    def paths(self) -> tuple[pathlib.Path, ...]:
        """Return every path the job may create."""
        return (
            self.exit_code_file,
            self.partial_exit_code_file,
            self.output_log_file,
        )

    def cleanup(self) -> None:
        """Remove every side-channel file of the job."""
        for path in self.paths():
            remove_quietly(path)


def wrap_command(command: str, files: JobFiles, capture: bool = False) -> str:
    """Return a POSIX shell fragment running ``command`` and reporting back.

    The command runs in a subshell so ``exit N`` is reported as ``N``. Its
    status is written to fd 3 before any pipe stage, so ``tee`` never masks
    it. A newline ends the command, a trailing ``# comment`` cannot swallow
    the rest of the fragment.

    Examples
    --------
    >>> files = JobFiles(pathlib.Path("/tmp/a.ret"), pathlib.Path("/tmp/a.log"))
    >>> print(wrap_command("make test", files))
    { ( make test
     ) 3>&-; echo $? >&3; } 3>/tmp/a.ret.part; mv -f /tmp/a.ret.part /tmp/a.ret
    >>> print(wrap_command("make", files, capture=True))
    { ( make
     ) 3>&-; echo $? >&3; } 3>/tmp/a.ret.part 2>&1 | tee /tmp/a.log; mv -f /tmp/a.ret.part /tmp/a.ret
    """
    partial = shlex.quote(str(files.partial_exit_code_file))
    exit_file = shlex.quote(str(files.exit_code_file))

    fragment = f"{{ ( {command}\n ) 3>&-; echo $? >&3; }} 3>{partial}"
    if capture:
        log_file = shlex.quote(str(files.output_log_file))
        fragment += f" 2>&1 | tee {log_file}"
    return f"{fragment}; mv -f {partial} {exit_file}"


def shell_invocation(fragment: str) -> list[str]:
    """Return argv running ``fragment`` under ``sh``.

    >>> shell_invocation("true")
    ['sh', '-c', 'true']
    """
    return ["sh", "-c", fragment]


def shell_string(fragment: str) -> str:
    """Return ``fragment`` as a single ``sh -c`` command line.

    >>> shell_string("echo $? > /tmp/x")
    "sh -c 'echo $? > /tmp/x'"
    """
    return shlex.join(shell_invocation(fragment))


def read_exit_code(path: pathlib.Path) -> int | None:
    """Return the exit code in ``path``, None while it is absent or empty.

    Unparsable content is read as ``0``.
    """
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None

    text = text.strip()
    if not text:
        return None

    try:
        return int(text)
    except ValueError:
        logger.debug(f"unparsable exit code in {path}: {text!r}")
        return 0


def read_output_lines(path: pathlib.Path) -> list[str] | None:
    """Return the lines of ``path`` without line endings, None if missing."""
    try:
        with path.open(encoding="utf-8", errors="backslashreplace") as f:
            return [line.rstrip("\r\n") for line in f]
    except FileNotFoundError:
        return None


def remove_quietly(path: pathlib.Path) -> None:
    """Remove ``path`` if it exists."""
    with contextlib.suppress(FileNotFoundError):
        path.unlink()

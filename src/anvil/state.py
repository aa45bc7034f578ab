"""Job state for anvil.

anvil.state
~~~~~~~~~~~

At most one job runs at any time. The supervisor claims the state with
:meth:`JobState.try_acquire` before anything is spawned and completion
handling releases it as its very last step.
"""

from __future__ import annotations

import logging

from . import exc

logger = logging.getLogger(__name__)


class JobState:
    """Single "is a job active" flag with compare-and-set semantics.

    Examples
    --------
    >>> state = JobState()
    >>> state.try_acquire()
    True
    >>> state.try_acquire()
    False
    >>> state.active
    True
    >>> state.release()
    >>> state.active
    False
    """

    def __init__(self) -> None:
        self._active = False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(active={self._active})"

    @property
    def active(self) -> bool:
        """Return True while a job holds the state."""
        return self._active

    def try_acquire(self) -> bool:
        """Claim the state, return False if it is already claimed."""
        if self._active:
            return False
        self._active = True
        return True

    def acquire(self) -> None:
        """Claim the state.

        Raises
        ------
        :exc:`exc.JobAlreadyRunning`
        """
        if not self.try_acquire():
            raise exc.JobAlreadyRunning

    def release(self) -> None:
        """Clear the state."""
        if not self._active:
            logger.debug("release() called without an active job")
        self._active = False


#: State shared by the module-level :func:`anvil.run`
job_state = JobState()

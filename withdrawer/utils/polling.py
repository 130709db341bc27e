"""
Bounded, cancellable polling.

Both waits this tool performs (a transaction receipt showing up on L1, an L1
finality anchor catching up with an L2 block) are expressed as a check that is
repeated at a fixed interval until it yields a value, the deadline passes or
the caller cancels.
"""

import threading
import time
from typing import Callable, Optional, TypeVar


T = TypeVar("T")


class PollTimeout(Exception):
    """Raised when the deadline passed before the check produced a value."""

    pass


class PollCancelled(Exception):
    """Raised when the cancellation event was set while waiting."""

    pass


def poll_until(
    check: Callable[[], Optional[T]],
    interval: float,
    timeout: float,
    cancel_event: Optional[threading.Event] = None,
    clock: Callable[[], float] = time.monotonic,
    on_wait: Optional[Callable[[], None]] = None,
) -> T:
    """
    Call `check` until it returns something other than ``None``.

    Parameters
    ----------
    check : Callable[[], Optional[T]]
        Returns ``None`` for "not yet". Exceptions propagate unchanged and end
        the loop.

    interval : float
        Seconds to wait between two checks.

    timeout : float
        Seconds from now after which `PollTimeout` is raised. The timeout is
        never raised before the deadline.

    cancel_event : threading.Event, optional
        Setting it interrupts the wait; `PollCancelled` is raised.

    clock : Callable[[], float]
        Monotonic clock, injectable for tests.

    on_wait : Callable[[], None], optional
        Invoked every time a check came back empty, before waiting.

    Returns
    -------
    T
    """
    if interval <= 0:
        raise ValueError("`interval` must be positive")

    cancel_event = cancel_event or threading.Event()
    deadline = clock() + timeout

    while True:
        if cancel_event.is_set():
            raise PollCancelled("polling cancelled")

        result = check()

        if result is not None:
            return result

        remaining = deadline - clock()

        if remaining <= 0:
            raise PollTimeout(f"no result after {timeout} seconds")

        if on_wait is not None:
            on_wait()

        if cancel_event.wait(min(interval, remaining)):
            raise PollCancelled("polling cancelled")

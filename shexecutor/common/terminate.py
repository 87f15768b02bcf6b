"""
Graceful-then-forceful termination of a timed-out process.
"""

import os
import time
from typing import Callable

from .log import info
from .types import TerminationSignal

POLL_INTERVAL = 0.1


def pid_alive(pid: int) -> bool:
    """Probe a pid without signalling it (an unreaped zombie still counts)."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by someone else
        return True
    return True


def send(pid: int, sig: TerminationSignal) -> None:
    info("signal_sent", pid=pid, signal=sig.name)
    os.kill(pid, sig.value)


def terminate(
    pid: int,
    kill_retry_ms: int = 500,
    is_alive: Callable[[], bool] | None = None,
) -> TerminationSignal | None:
    """
    Send GRACEFUL, wait up to kill_retry_ms for the process to go away,
    then send FORCEFUL if it is still there.

    Returns the last signal delivered, or None if the process was already gone.
    A process vanishing at any point counts as a successful termination.
    """
    alive = is_alive if is_alive is not None else (lambda: pid_alive(pid))
    try:
        send(pid, TerminationSignal.GRACEFUL)
    except ProcessLookupError:
        return None

    ticks = max(0, int(kill_retry_ms) // int(POLL_INTERVAL * 1000))
    try:
        for _ in range(ticks):
            if not alive():
                return TerminationSignal.GRACEFUL
            time.sleep(POLL_INTERVAL)
        if not alive():
            return TerminationSignal.GRACEFUL
        send(pid, TerminationSignal.FORCEFUL)
    except ProcessLookupError:
        # exited between polls
        return TerminationSignal.GRACEFUL
    return TerminationSignal.FORCEFUL

"""
Completion coordination and the timeout watchdog.

CompletionState is the only state shared between the watchdog thread and the
main path. Every read-then-act happens under its lock, and the first decision
wins, so a watchdog timeout and a normal completion can never both be
recorded.
"""

import subprocess
import threading

from .log import error, info


class CompletionState:
    """{completed, timed_out} guarded by a condition variable."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._completed = False
        self._timed_out = False

    def settle(self, timed_out: bool) -> bool:
        """Record the outcome; returns False if an outcome was already recorded."""
        with self._cond:
            if self._completed:
                return False
            self._completed = True
            self._timed_out = timed_out
            self._cond.notify_all()
            return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until settled; returns the timed_out flag (False if still unsettled)."""
        with self._cond:
            self._cond.wait_for(lambda: self._completed, timeout)
            return self._completed and self._timed_out

    @property
    def completed(self) -> bool:
        with self._cond:
            return self._completed

    @property
    def timed_out(self) -> bool:
        with self._cond:
            return self._timed_out


class TimeoutWatchdog:
    """
    Waits on the process for at most timeout_seconds, then settles the state.

    A process that turns out to have exited by the time the wait expires is
    recorded as completed, not timed out.
    """

    def __init__(self, proc: subprocess.Popen, timeout_seconds: float, state: CompletionState) -> None:
        self._proc = proc
        self.timeout_seconds = timeout_seconds
        self.state = state
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run, name=f"shexecutor-watchdog-{self._proc.pid}", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        try:
            try:
                self._proc.wait(timeout=self.timeout_seconds)
            except subprocess.TimeoutExpired:
                if self._proc.poll() is None:
                    self.state.settle(timed_out=True)
                    info("watchdog_timeout", pid=self._proc.pid, timeout=self.timeout_seconds)
                    return
            self.state.settle(timed_out=False)
        except Exception as e:
            error("watchdog_error", pid=self._proc.pid, err=str(e))
        finally:
            # never leave the main path waiting on an unsettled state
            self.state.settle(timed_out=False)

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

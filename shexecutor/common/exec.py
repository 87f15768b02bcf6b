"""
Process runner: spawn, drain, watch, and wait with structured results.
"""

import os
import subprocess
from subprocess import PIPE
from time import perf_counter
from typing import Any, NoReturn

from .drain import OutputBuffers, StreamDrainer
from .errors import ExecutionTimeout, ShexecutorError
from .log import info, warn
from .output import flush_to_files
from .terminate import terminate
from .types import CmdResult, RunOptions, TerminationSignal
from .validate import resolve_application_path, validate_options
from .watchdog import CompletionState, TimeoutWatchdog

# How long timed-out drainers get to reach EOF after the kill before being abandoned
ABANDON_GRACE_SECONDS = 0.5


class ExecutionHandle:
    """
    The live child process of one run, plus its output buffers, watchdog and
    completion state. join() applies the same wait policy a blocking run uses.
    """

    def __init__(
        self,
        proc: subprocess.Popen,
        buffers: OutputBuffers,
        state: CompletionState,
        watchdog: TimeoutWatchdog | None = None,
        kill_retry_ms: int = 500,
    ) -> None:
        self._proc = proc
        self.buffers = buffers
        self.state = state
        self.watchdog = watchdog
        self.kill_retry_ms = kill_retry_ms
        # last signal delivered by the timeout path; set once
        self.termination: TerminationSignal | None = None

    def join(self) -> int:
        if self.watchdog is not None:
            return wait_with_timeout(self.buffers, self, self.kill_retry_ms)
        return wait_for_exit(self.buffers, self)

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    def poll(self) -> int | None:
        return self._proc.poll()

    def is_alive(self) -> bool:
        return self._proc.poll() is None

    def wait(self, timeout: float | None = None) -> int:
        return self._proc.wait(timeout)

    def __repr__(self) -> str:
        return f"ExecutionHandle(pid={self.pid}, returncode={self.returncode})"


def run_process(options: RunOptions) -> tuple[OutputBuffers, ExecutionHandle]:
    """
    Validate, spawn and start draining; returns without waiting.

    Both drainers (and the watchdog, when a timeout is set) are running
    before stdin is closed, so a chatty child can never fill an unread pipe.
    """
    validate_options(options)
    path = resolve_application_path(options.application_path)
    proc = subprocess.Popen([path, *options.params], stdin=PIPE, stdout=PIPE, stderr=PIPE)
    info("spawned", pid=proc.pid, argv=[path, *options.params], timeout=options.timeout)

    assert proc.stdout is not None and proc.stderr is not None and proc.stdin is not None
    buffers = OutputBuffers(StreamDrainer(proc.stdout, "stdout"), StreamDrainer(proc.stderr, "stderr"))
    buffers.start()

    state = CompletionState()
    watchdog = None
    if options.should_timeout:
        watchdog = TimeoutWatchdog(proc, options.timeout, state)
        watchdog.start()

    try:
        proc.stdin.close()
    except BrokenPipeError:
        pass
    return buffers, ExecutionHandle(proc, buffers, state, watchdog, options.timeout_sig_kill_retry)


def wait_for_exit(buffers: OutputBuffers, handle: ExecutionHandle) -> int:
    """Join both drainers, then the process."""
    buffers.join()
    code = handle.wait()
    handle.state.settle(timed_out=False)
    return code


def wait_with_timeout(buffers: OutputBuffers, handle: ExecutionHandle, kill_retry_ms: int) -> int:
    """
    Wait for the watchdog's decision before touching the drainers.

    On timeout the process is terminated first and only then is
    ExecutionTimeout raised. Drainer failures seen after the kill are
    reported in the error details, not raised.
    """
    if handle.watchdog is None:
        return wait_for_exit(buffers, handle)

    if handle.state.wait():
        _fail_timed_out(buffers, handle, kill_retry_ms)

    buffers.join()
    handle.watchdog.join()
    return handle.wait()


def _fail_timed_out(buffers: OutputBuffers, handle: ExecutionHandle, kill_retry_ms: int) -> NoReturn:
    assert handle.watchdog is not None
    timeout = handle.watchdog.timeout_seconds
    # a reaped pid may already belong to another process
    if handle.returncode is None:
        handle.termination = terminate(handle.pid, kill_retry_ms, is_alive=handle.is_alive)
        try:
            handle.wait(ABANDON_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            warn("timeout_reap_pending", pid=handle.pid)

    sig = handle.termination
    details: dict[str, Any] = {
        "pid": handle.pid,
        "timeout": timeout,
        "signal": sig.name if sig is not None else None,
    }
    # TODO: raise an error group carrying both causes once callers can handle it
    suppressed = buffers.abandon(ABANDON_GRACE_SECONDS)
    if suppressed:
        details["stream_errors"] = {name: str(exc) for name, exc in suppressed}
        warn("stream_error_suppressed", pid=handle.pid, errors=details["stream_errors"])
    raise ExecutionTimeout(f"execution expired after {timeout}s", error_code="timeout", details=details)


def wait_for(buffers: OutputBuffers, handle: ExecutionHandle, options: RunOptions) -> int:
    if options.should_timeout:
        return wait_with_timeout(buffers, handle, options.timeout_sig_kill_retry)
    return wait_for_exit(buffers, handle)


def replace_process(options: RunOptions) -> NoReturn:
    """Validate, then replace the current process image with the command."""
    validate_options(options)
    path = resolve_application_path(options.application_path)
    info("replacing_process", argv=[path, *options.params])
    os.execvp(path, [path, *options.params])


def run_command(
    cmd: RunOptions | list[str] | str,
    timeout_seconds: float | int | None = None,
    **overrides: Any,
) -> CmdResult:
    """
    Execute a command, wait for it and capture output.

    - cmd: RunOptions, argv list, or a single executable path (never a shell line)
    - returns: CmdResult with stdout/stderr, exit code, timeout flag, and elapsed time
    - never raises: timeouts give code -1, validation/spawn/stream failures code -2
    """
    if isinstance(cmd, RunOptions):
        options = cmd
    elif isinstance(cmd, str):
        options = RunOptions(application_path=cmd)
    else:
        options = RunOptions(application_path=cmd[0] if cmd else "", params=tuple(cmd[1:]))
    if timeout_seconds is not None:
        overrides["timeout"] = timeout_seconds

    start = perf_counter()
    buffers: OutputBuffers | None = None
    try:
        options = options.merged(overrides)
        buffers, handle = run_process(options)
        code = wait_for(buffers, handle, options)
        flush_to_files(options, buffers.stdout, buffers.stderr)
        return CmdResult(
            code=int(code),
            out=buffers.stdout,
            err=buffers.stderr,
            timed_out=False,
            elapsed_seconds=perf_counter() - start,
        )
    except ExecutionTimeout as e:
        assert buffers is not None
        try:
            flush_to_files(options, buffers.stdout, buffers.stderr)
        except OSError as fe:
            warn("flush_failed", err=str(fe))
        return CmdResult(
            code=-1,
            out=buffers.stdout,
            err=buffers.stderr,
            timed_out=True,
            elapsed_seconds=perf_counter() - start,
            details=e.details,
        )
    except (ShexecutorError, OSError) as e:
        return CmdResult(
            code=-2,
            out=buffers.stdout if buffers is not None else b"",
            err=str(e).encode("utf-8", errors="replace"),
            timed_out=False,
            elapsed_seconds=perf_counter() - start,
            details=e.to_dict() if isinstance(e, ShexecutorError) else {},
        )

"""
Executor object and the blocking / timeout / non-blocking entry points.

Usage:
  code, out, err = execute_blocking("/bin/echo", ["hello"])
  code, out, err = execute_and_timeout_after("/bin/sleep", ["5"], timeout=1)  # raises ExecutionTimeout
  handle = execute_non_blocking("/usr/bin/make", ["-j4"]); code = handle.join()
"""

from typing import Any, Iterable, Mapping

from shexecutor.common.drain import OutputBuffers
from shexecutor.common.errors import ExecutionTimeout
from shexecutor.common.exec import ExecutionHandle, replace_process, run_process, wait_for
from shexecutor.common.log import warn
from shexecutor.common.output import flush_to_files
from shexecutor.common.types import DEFAULT_OPTIONS, RunOptions, RunStatus
from shexecutor.common.validate import validate_options


class Executor:
    """
    One configured execution.

    Options are fixed at construction: explicit `options` (a RunOptions or a
    mapping layered over `defaults`), then keyword overrides on top.
    """

    def __init__(
        self,
        options: RunOptions | Mapping[str, Any] | None = None,
        defaults: RunOptions = DEFAULT_OPTIONS,
        **overrides: Any,
    ) -> None:
        base = options if isinstance(options, RunOptions) else defaults.merged(options)
        self.options: RunOptions = base.merged(overrides)
        self.stdout: bytes | None = None
        self.stderr: bytes | None = None
        self.handle: ExecutionHandle | None = None
        self.buffers: OutputBuffers | None = None
        self._timed_out = False

    @property
    def status(self) -> RunStatus:
        if self.handle is None:
            return "not_executed"
        if self._timed_out:
            return "timed_out"
        if self.handle.is_alive():
            return "running"
        return "completed"

    @property
    def result(self) -> int | None:
        """Exit code once completed; None otherwise."""
        if self.status != "completed":
            return None
        assert self.handle is not None
        return self.handle.returncode

    def validate(self) -> None:
        validate_options(self.options)

    def execute(self) -> int | ExecutionHandle:
        """
        Run according to the options.

        - replace: never returns
        - wait_for_completion: returns the exit code (ExecutionTimeout if the timeout hits)
        - otherwise: returns the live ExecutionHandle immediately
        """
        self.stdout = None
        self.stderr = None
        self.handle = None
        self.buffers = None
        self._timed_out = False

        if self.options.replace:
            replace_process(self.options)

        self.buffers, self.handle = run_process(self.options)
        if not self.options.wait_for_completion:
            return self.handle
        return self.wait()

    def wait(self) -> int:
        """Block on a started run using the configured wait policy."""
        if self.handle is None or self.buffers is None:
            raise RuntimeError("Executor.wait() called before execute()")
        try:
            return wait_for(self.buffers, self.handle, self.options)
        except ExecutionTimeout:
            self._timed_out = True
            raise

    def flush(self) -> tuple[bytes | None, bytes | None] | None:
        """
        Materialize captured output into .stdout/.stderr (None when empty)
        and write it to the configured files. Returns None before execute().
        """
        if self.buffers is None:
            return None
        out = self.buffers.stdout
        err = self.buffers.stderr
        self.stdout = out or None
        self.stderr = err or None
        flush_to_files(self.options, out, err)
        return self.stdout, self.stderr


def _run_and_flush(executor: Executor) -> tuple[int, bytes | None, bytes | None]:
    try:
        code = executor.execute()
    except Exception:
        # the run's own failure wins over a failed write of its output
        try:
            executor.flush()
        except OSError as e:
            warn("flush_failed", err=str(e))
        raise
    executor.flush()
    assert isinstance(code, int)
    return code, executor.stdout, executor.stderr


def execute_blocking(
    application_path: str,
    params: Iterable[str] | None = None,
    defaults: RunOptions = DEFAULT_OPTIONS,
    **options: Any,
) -> tuple[int, bytes | None, bytes | None]:
    """Run to completion without a timeout; returns (exit code, stdout, stderr)."""
    executor = Executor(
        options,
        defaults,
        application_path=application_path,
        params=params,
        wait_for_completion=True,
        timeout=-1,
        replace=False,
    )
    return _run_and_flush(executor)


def execute_and_timeout_after(
    application_path: str,
    params: Iterable[str] | None = None,
    timeout: float = -1,
    defaults: RunOptions = DEFAULT_OPTIONS,
    **options: Any,
) -> tuple[int, bytes | None, bytes | None]:
    """
    Run to completion, raising ExecutionTimeout (after terminating the
    process) if it outlives `timeout` seconds. Configured output files are
    written in both cases.
    """
    executor = Executor(
        options,
        defaults,
        application_path=application_path,
        params=params,
        wait_for_completion=True,
        timeout=timeout,
        replace=False,
    )
    return _run_and_flush(executor)


def execute_non_blocking(
    application_path: str,
    params: Iterable[str] | None = None,
    defaults: RunOptions = DEFAULT_OPTIONS,
    **options: Any,
) -> ExecutionHandle:
    """Spawn and return the live handle; poll it or join() it later."""
    executor = Executor(
        options,
        defaults,
        application_path=application_path,
        params=params,
        wait_for_completion=False,
        replace=False,
    )
    handle = executor.execute()
    assert isinstance(handle, ExecutionHandle)
    return handle

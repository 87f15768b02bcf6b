"""Tests for the process runner, wait policies and run_command."""

import os
import signal
import time

import pytest

from shexecutor.common.errors import ExecutionTimeout, StreamError
from shexecutor.common.exec import (
    run_command,
    run_process,
    wait_for,
    wait_for_exit,
    wait_with_timeout,
)
from shexecutor.common.types import RunOptions, TerminationSignal


def test_run_process_returns_before_the_child_finishes(make_script):
    script = make_script("sleep 0.5\nprintf late")
    start = time.monotonic()
    buffers, handle = run_process(RunOptions(application_path=script))
    assert time.monotonic() - start < 0.4
    assert handle.is_alive()
    assert handle.watchdog is None
    assert wait_for_exit(buffers, handle) == 0
    assert buffers.stdout == b"late"
    assert buffers.finalized
    assert handle.state.completed and not handle.state.timed_out


def test_stdin_is_closed_for_the_child(make_script):
    # cat exits at once on EOF instead of waiting for input
    script = make_script("cat\nprintf after-cat")
    buffers, handle = run_process(RunOptions(application_path=script, timeout=5))
    assert wait_with_timeout(buffers, handle, 500) == 0
    assert buffers.stdout == b"after-cat"


def test_watchdog_only_starts_with_positive_timeout(make_script):
    script = make_script("exit 0")
    for timeout, expected in ((-1, False), (0, False), (2, True)):
        buffers, handle = run_process(RunOptions(application_path=script, timeout=timeout))
        assert (handle.watchdog is not None) is expected
        wait_for(buffers, handle, RunOptions(application_path=script, timeout=timeout))


def test_timeout_terminates_before_raising(sleep_bin):
    buffers, handle = run_process(RunOptions(application_path=sleep_bin, params=("5",), timeout=0.3))
    with pytest.raises(ExecutionTimeout) as exc:
        wait_with_timeout(buffers, handle, 500)
    assert not handle.is_alive()
    assert exc.value.details["pid"] == handle.pid
    assert exc.value.details["signal"] == "GRACEFUL"
    assert exc.value.error_code == "timeout"
    assert "stream_errors" not in exc.value.details


def test_drainer_error_during_timeout_is_reported_as_timeout(sleep_bin, log_lines):
    buffers, handle = run_process(RunOptions(application_path=sleep_bin, params=("5",), timeout=0.3))
    buffers.stdout_drainer.error = OSError("abandoned pipe")
    with pytest.raises(ExecutionTimeout) as exc:
        wait_with_timeout(buffers, handle, 500)
    assert exc.value.details["stream_errors"] == {"stdout": "abandoned pipe"}
    assert any(r["msg"] == "stream_error_suppressed" for r in log_lines())


def test_drainer_error_without_timeout_is_a_stream_error(make_script):
    buffers, handle = run_process(RunOptions(application_path=make_script("exit 0")))
    buffers.stderr_drainer.error = OSError("read failed")
    with pytest.raises(StreamError):
        wait_for_exit(buffers, handle)


def test_handle_join_uses_the_timeout_policy(sleep_bin):
    _, handle = run_process(RunOptions(application_path=sleep_bin, params=("5",), timeout=0.2, timeout_sig_kill_retry=100))
    assert handle.kill_retry_ms == 100
    with pytest.raises(ExecutionTimeout):
        handle.join()
    assert handle.returncode is not None


def test_run_command_success():
    result = run_command(["/bin/sh", "-c", "printf hi; printf oops >&2; exit 4"])
    assert result.code == 4
    assert result.out == b"hi"
    assert result.err == b"oops"
    assert result.timed_out is False
    assert result.elapsed_seconds >= 0


def test_run_command_timeout_never_raises(make_script):
    script = make_script("printf partial\nexec sleep 5")
    result = run_command([script], timeout_seconds=0.3)
    assert result.code == -1
    assert result.timed_out is True
    assert result.out == b"partial"
    assert result.details["timeout"] == 0.3


def test_run_command_validation_failure_never_raises(tmp_path):
    result = run_command(str(tmp_path / "missing"))
    assert result.code == -2
    assert b"Application path not found" in result.err
    assert result.details["error"] == "ValidationError"


def test_run_command_writes_configured_files(make_script, tmp_path):
    out = tmp_path / "out.log"
    result = run_command([make_script("printf data")], stdout_path=str(out), append_stdout_path=False)
    assert result.code == 0
    assert out.read_bytes() == b"data"


def test_spawn_is_logged(make_script, log_lines):
    script = make_script("exit 0")
    run_command([script])
    spawned = [r for r in log_lines() if r["msg"] == "spawned"]
    assert spawned and spawned[0]["argv"] == [script]


def test_joining_a_timed_out_handle_again_sends_no_signal(sleep_bin, log_lines):
    _, handle = run_process(RunOptions(application_path=sleep_bin, params=("5",), timeout=0.2))
    with pytest.raises(ExecutionTimeout) as first:
        handle.join()
    with pytest.raises(ExecutionTimeout) as second:
        handle.join()
    assert first.value.details["signal"] == "GRACEFUL"
    assert second.value.details["signal"] == "GRACEFUL"
    assert handle.termination is TerminationSignal.GRACEFUL
    assert len([r for r in log_lines() if r["msg"] == "signal_sent"]) == 1


def test_timeout_stops_drainers_held_open_by_a_grandchild(make_script, tmp_path):
    pidfile = tmp_path / "grandchild.pid"
    script = make_script(f"sleep 30 &\necho $! > '{pidfile}'\nprintf started\nexec sleep 30")
    buffers, handle = run_process(RunOptions(application_path=script, timeout=0.5))
    try:
        with pytest.raises(ExecutionTimeout):
            wait_with_timeout(buffers, handle, 200)
        assert not handle.is_alive()
        assert buffers.finalized
        assert buffers.stdout_drainer.stopped
        assert buffers.stdout == b"started"
    finally:
        if pidfile.exists():
            os.kill(int(pidfile.read_text()), signal.SIGKILL)

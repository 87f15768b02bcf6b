"""
Stream drainers: one thread per child pipe, copying bytes into memory until EOF.

Keeping both pipes drained from the moment the child starts prevents it from
blocking on a full pipe buffer.
"""

import selectors
import threading
from typing import IO

from .errors import StreamError
from .log import debug, warn

CHUNK_SIZE = 64 * 1024

# How often a drainer waiting on a quiet pipe checks whether it was stopped
SELECT_INTERVAL = 0.1


class StreamDrainer:
    """Copies a live pipe into an owned bytearray on a daemon thread."""

    def __init__(self, stream: IO[bytes], name: str) -> None:
        self._stream = stream
        self.name = name
        self._buf = bytearray()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self.stopped = False
        self.error: BaseException | None = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name=f"shexecutor-{self.name}", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Ask the drainer to give up before EOF; it closes its stream on the way out."""
        self._stop.set()

    def _read_chunk(self) -> bytes:
        read1 = getattr(self._stream, "read1", None)
        if read1 is not None:
            return read1(CHUNK_SIZE)
        return self._stream.read(CHUNK_SIZE)

    def _selectable(self) -> bool:
        try:
            self._stream.fileno()
        except (OSError, ValueError):
            # in-memory streams have no fd
            return False
        return True

    def _append(self, chunk: bytes) -> None:
        with self._lock:
            self._buf.extend(chunk)

    def _pump(self) -> None:
        while chunk := self._read_chunk():
            self._append(chunk)

    def _pump_selected(self) -> None:
        with selectors.DefaultSelector() as sel:
            sel.register(self._stream, selectors.EVENT_READ)
            while not self._stop.is_set():
                if not sel.select(SELECT_INTERVAL):
                    continue
                chunk = self._read_chunk()
                if not chunk:
                    return
                self._append(chunk)
        self.stopped = True

    def _run(self) -> None:
        try:
            if self._selectable():
                self._pump_selected()
            else:
                self._pump()
        except (OSError, ValueError) as e:
            # ValueError: read on a pipe closed under us
            self.error = e
            warn("drain_error", stream=self.name, err=str(e))
        finally:
            try:
                self._stream.close()
            except OSError as e:
                warn("drain_close_error", stream=self.name, err=str(e))
            debug("drain_done", stream=self.name, size=len(self._buf), stopped=self.stopped)

    @property
    def started(self) -> bool:
        return self._thread is not None

    @property
    def finished(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for EOF; returns True once the drainer has finished."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def data(self) -> bytes:
        with self._lock:
            return bytes(self._buf)


class OutputBuffers:
    """
    The stdout and stderr accumulators of one run.

    Each buffer is written only by its drainer; readers get snapshots.
    Contents are final once join() (or abandon()) has returned.
    """

    def __init__(self, stdout: StreamDrainer, stderr: StreamDrainer) -> None:
        self.stdout_drainer = stdout
        self.stderr_drainer = stderr
        self.abandoned = False

    @property
    def drainers(self) -> tuple[StreamDrainer, StreamDrainer]:
        return self.stdout_drainer, self.stderr_drainer

    def start(self) -> None:
        for d in self.drainers:
            d.start()

    @property
    def stdout(self) -> bytes:
        return self.stdout_drainer.data

    @property
    def stderr(self) -> bytes:
        return self.stderr_drainer.data

    @property
    def finalized(self) -> bool:
        return all(d.finished for d in self.drainers)

    def errors(self) -> list[tuple[str, BaseException]]:
        return [(d.name, d.error) for d in self.drainers if d.error is not None]

    def join(self) -> None:
        """Join both drainers; a drainer failure surfaces as StreamError."""
        for d in self.drainers:
            d.join()
        errs = self.errors()
        if errs:
            name, exc = errs[0]
            raise StreamError(
                f"Failed reading {name}: {exc}",
                details={"streams": [n for n, _ in errs]},
            ) from exc

    def abandon(self, grace_seconds: float) -> list[tuple[str, BaseException]]:
        """
        Give the drainers a bounded chance to reach EOF, then stop them.

        Used on the timeout path, where a surviving grandchild can hold a
        pipe open. Stopped drainers close their pipe and keep what they
        captured. Returns any drainer errors instead of raising them.
        """
        self.abandoned = True
        for d in self.drainers:
            if d.join(grace_seconds):
                continue
            d.stop()
            finished = d.join(SELECT_INTERVAL * 5)
            warn("drain_abandoned", stream=d.name, finished=finished)
        return self.errors()

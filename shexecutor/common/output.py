"""
Persisting captured buffers to files.
"""

from pathlib import Path

from .log import debug
from .types import RunOptions


def write_buffer(path: str | Path, data: bytes, append: bool = True) -> Path:
    """Append data to path, or replace its contents when append is False."""
    p = Path(path)
    with p.open("ab" if append else "wb") as f:
        f.write(data)
    debug("buffer_written", path=str(p), size=len(data), append=append)
    return p


def flush_to_files(options: RunOptions, stdout: bytes, stderr: bytes) -> list[Path]:
    """Write each captured stream to its configured destination, if any."""
    written: list[Path] = []
    if options.stdout_path:
        written.append(write_buffer(options.stdout_path, stdout, options.append_stdout_path))
    if options.stderr_path:
        written.append(write_buffer(options.stderr_path, stderr, options.append_stderr_path))
    return written

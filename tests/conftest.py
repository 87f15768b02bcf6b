"""
Pytest configuration and fixtures for shexecutor tests.

Tests spawn real POSIX processes from small /bin/sh scripts.
"""

import json
import shutil
from pathlib import Path

import pytest

from shexecutor.common.config import clear_cache


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep logs and config discovery inside the test's tmp dir."""
    monkeypatch.setenv("SHEXECUTOR_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("SHEXECUTOR_CONFIG", raising=False)
    monkeypatch.delenv("SHEXECUTOR_LOG_LEVEL", raising=False)
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def make_script(tmp_path):
    """Write an executable /bin/sh script and return its path."""

    def _make(body: str, name: str = "script.sh", directory: Path | None = None) -> str:
        d = directory or tmp_path
        d.mkdir(parents=True, exist_ok=True)
        p = d / name
        p.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
        p.chmod(0o755)
        return str(p)

    return _make


@pytest.fixture
def sleep_bin():
    path = shutil.which("sleep")
    if path is None:
        pytest.skip("sleep not available")
    return path


@pytest.fixture
def log_lines(tmp_path):
    """Read back the JSON log written during the test."""

    def _read() -> list[dict]:
        logfile = tmp_path / "logs" / "shexecutor.log"
        if not logfile.exists():
            return []
        return [json.loads(line) for line in logfile.read_text(encoding="utf-8").splitlines() if line.strip()]

    return _read

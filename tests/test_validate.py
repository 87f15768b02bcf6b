"""Tests for pre-spawn path validation."""

import shutil
import subprocess

import pytest

from shexecutor.common.errors import ValidationError
from shexecutor.common.exec import run_process
from shexecutor.common.types import RunOptions
from shexecutor.common.validate import (
    NO_PATH,
    NOT_EXECUTABLE,
    NOT_FOUND,
    SUSPECTED_INJECTION,
    path_violations,
    resolve_application_path,
    validate_options,
)


def test_executable_script_is_valid(make_script):
    path = make_script("exit 0")
    assert path_violations(path, protect_against_injection=True) == []


def test_nonexistent_path_is_reported(tmp_path):
    assert path_violations(str(tmp_path / "missing"), True) == [NOT_FOUND]


def test_non_executable_file_is_reported(tmp_path):
    p = tmp_path / "data.txt"
    p.write_text("not a program")
    p.chmod(0o644)
    assert path_violations(str(p), True) == [NOT_EXECUTABLE]


def test_directory_is_not_executable(tmp_path):
    assert path_violations(str(tmp_path), True) == [NOT_EXECUTABLE]


def test_space_in_path_is_suspected_injection(make_script, tmp_path):
    path = make_script("exit 0", directory=tmp_path / "my dir")
    assert path_violations(path, True) == [SUSPECTED_INJECTION]


def test_space_in_path_accepted_without_protection(make_script, tmp_path):
    path = make_script("exit 0", directory=tmp_path / "my dir")
    assert path_violations(path, False) == []


def test_tainted_path_is_suspected_injection(make_script):
    path = make_script("exit 0")
    assert path_violations(path, True, tainted=True) == [SUSPECTED_INJECTION]


def test_violations_accumulate_in_order(tmp_path):
    missing = str(tmp_path / "no such dir" / "prog")
    assert path_violations(missing, True) == [NOT_FOUND, SUSPECTED_INJECTION]


@pytest.mark.parametrize("protect", [True, False])
@pytest.mark.parametrize("path", ["", "   ", None])
def test_blank_path_only_reports_missing_path(path, protect):
    assert path_violations(path, protect) == [NO_PATH]


def test_protection_off_only_checks_presence(tmp_path):
    assert path_violations(str(tmp_path / "missing"), False) == []


def test_bare_command_name_resolves_through_path():
    sh = shutil.which("sh")
    if sh is None:
        pytest.skip("sh not on PATH")
    assert resolve_application_path("sh") == sh
    assert path_violations("sh", True) == []


def test_paths_with_separator_are_not_resolved(tmp_path):
    p = str(tmp_path / "prog")
    assert resolve_application_path(p) == p


def test_validate_options_joins_violations(tmp_path):
    missing = str(tmp_path / "no such dir" / "prog")
    with pytest.raises(ValidationError) as exc:
        validate_options(RunOptions(application_path=missing))
    assert str(exc.value) == f"{NOT_FOUND},{SUSPECTED_INJECTION}"
    assert exc.value.details["violations"] == [NOT_FOUND, SUSPECTED_INJECTION]
    assert isinstance(exc.value, ValueError)


def test_validation_failure_is_logged(tmp_path, log_lines):
    with pytest.raises(ValidationError):
        validate_options(RunOptions(application_path=str(tmp_path / "missing")))
    assert any(r["msg"] == "validation_failed" for r in log_lines())


def test_nonexistent_path_never_spawns(tmp_path, monkeypatch):
    def _no_spawn(*args, **kwargs):
        raise AssertionError("Popen must not be called")

    monkeypatch.setattr(subprocess, "Popen", _no_spawn)
    with pytest.raises(ValidationError):
        run_process(RunOptions(application_path=str(tmp_path / "missing")))


"""
Pre-spawn checks on the application path.

Runs synchronously before any process exists; never during a live run.
"""

import os
from pathlib import Path
from shutil import which as find_exe

from .errors import ValidationError
from .log import warn
from .types import RunOptions

NO_PATH = "No application path provided"
NOT_FOUND = "Application path not found"
NOT_EXECUTABLE = "Application path not executable"
SUSPECTED_INJECTION = (
    "Suspected injection vulnerability due to space in application_path or the path being "
    "marked as tainted. Turn off strict checking if you are sure by setting "
    "protect_against_injection to false"
)


def _is_blank(path: str | None) -> bool:
    return path is None or not path.strip()


def resolve_application_path(path: str) -> str:
    """
    Resolve a bare command name (no path separator) through PATH.
    Paths containing a separator, and names that cannot be found, are returned unchanged.
    """
    if _is_blank(path) or os.sep in path or (os.altsep and os.altsep in path):
        return path
    found = find_exe(path)
    return found if found else path


def possible_injection(path: str, tainted: bool = False) -> bool:
    return " " in path or tainted


def path_violations(path: str | None, protect_against_injection: bool, tainted: bool = False) -> list[str]:
    """
    Return violation descriptions for path; an empty list means valid.

    - protection off (or blank path): only the non-empty check
    - protection on: existence, executability, then injection suspicion
    """
    errors: list[str] = []
    if not protect_against_injection or _is_blank(path):
        if _is_blank(path):
            errors.append(NO_PATH)
        return errors

    assert path is not None
    p = Path(resolve_application_path(path))
    if p.exists():
        if not p.is_file() or not os.access(p, os.X_OK):
            errors.append(NOT_EXECUTABLE)
    else:
        errors.append(NOT_FOUND)
    if possible_injection(path, tainted):
        errors.append(SUSPECTED_INJECTION)
    return errors


def validate_options(options: RunOptions) -> None:
    errors = path_violations(options.application_path, options.protect_against_injection, options.tainted)
    if errors:
        warn("validation_failed", application_path=options.application_path, violations=errors)
        raise ValidationError(",".join(errors), details={"violations": errors})

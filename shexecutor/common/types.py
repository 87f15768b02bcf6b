"""
Shared types for shexecutor (options, results, statuses, signals).
"""

import signal
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Literal, Mapping

from .errors import ConfigError


RunStatus = Literal["not_executed", "running", "completed", "timed_out"]


class TerminationSignal(Enum):
    """Two-stage kill protocol: cooperative first, then non-catchable."""
    GRACEFUL = signal.SIGTERM
    FORCEFUL = signal.SIGKILL


@dataclass(slots=True, frozen=True)
class RunOptions:
    """
    Options for a single execution; immutable once built.

    - timeout: seconds; <= 0 disables the watchdog
    - tainted: caller says the path came from untrusted input
    - timeout_sig_kill_retry: ms to wait after GRACEFUL before FORCEFUL
    """
    application_path: str = ""
    params: tuple[str, ...] = ()
    timeout: float = -1
    protect_against_injection: bool = True
    tainted: bool = False
    stdout_path: str | None = None
    stderr_path: str | None = None
    append_stdout_path: bool = True
    append_stderr_path: bool = True
    replace: bool = False
    wait_for_completion: bool = False
    timeout_sig_kill_retry: int = 500

    @property
    def should_timeout(self) -> bool:
        return self.timeout > 0

    def merged(self, overrides: Mapping[str, Any] | None = None, **kwargs: Any) -> "RunOptions":
        """Return a copy with overrides applied; self is never mutated."""
        values = dict(overrides or {})
        values.update(kwargs)
        if not values:
            return self
        return replace(self, **_coerce(values))


DEFAULT_OPTIONS = RunOptions()

OPTION_NAMES: frozenset[str] = frozenset(f.name for f in fields(RunOptions))

BOOL_OPTIONS: tuple[str, ...] = (
    "protect_against_injection",
    "tainted",
    "append_stdout_path",
    "append_stderr_path",
    "replace",
    "wait_for_completion",
)


def _coerce(values: dict[str, Any]) -> dict[str, Any]:
    unknown = sorted(k for k in values if k not in OPTION_NAMES)
    if unknown:
        raise ConfigError(f"Unknown option(s): {', '.join(unknown)}", error_code="unknown_option")

    out = dict(values)
    if "params" in out:
        p = out["params"]
        if p is None:
            out["params"] = ()
        elif isinstance(p, str):
            out["params"] = (p,)
        else:
            out["params"] = tuple(str(x) for x in p)
    if "application_path" in out:
        out["application_path"] = "" if out["application_path"] is None else str(out["application_path"])
    for key in ("stdout_path", "stderr_path"):
        if key in out and out[key] is not None:
            out[key] = str(out[key])
    for key in BOOL_OPTIONS:
        # "false" from a hand-written config would otherwise be truthy
        if key in out and not isinstance(out[key], bool):
            raise ConfigError(
                f"Option {key} must be true or false, got: {out[key]!r}",
                error_code="invalid_option",
                details={"option": key},
            )
    try:
        if "timeout" in out:
            out["timeout"] = float(out["timeout"]) if out["timeout"] is not None else -1.0
        if "timeout_sig_kill_retry" in out:
            out["timeout_sig_kill_retry"] = int(out["timeout_sig_kill_retry"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid numeric option: {e}", error_code="invalid_option") from e
    return out


def options_from_mapping(values: Mapping[str, Any], base: RunOptions = DEFAULT_OPTIONS) -> RunOptions:
    return base.merged(values)


@dataclass(slots=True)
class CmdResult:
    code: int
    out: bytes
    err: bytes
    timed_out: bool
    elapsed_seconds: float
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "stdout": self.out.decode("utf-8", errors="replace"),
            "stderr": self.err.decode("utf-8", errors="replace"),
            "timed_out": self.timed_out,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            **({"details": self.details} if self.details else {}),
        }

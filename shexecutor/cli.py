"""
Command-line runner for shexecutor.

Usage:
  shexecutor [OPTIONS] -- COMMAND [ARGS...]

Runs COMMAND to completion (optionally under a timeout), then prints a single
JSON object with the exit code, captured stdout/stderr, timeout flag and
elapsed time. The runner's own exit status is 0 unless usage is invalid.
"""

import json
import sys
import importlib.metadata as ilmd
from dataclasses import asdict
from typing import Any

from shexecutor.common.config import load_config, load_defaults
from shexecutor.common.errors import ShexecutorError
from shexecutor.common.exec import replace_process, run_command
from shexecutor.common.types import RunOptions


def _print_help() -> None:
    msg = (
        "shexecutor — run a command with captured output and a timeout\n\n"
        "Usage: shexecutor [OPTIONS] -- COMMAND [ARGS...]\n\n"
        "Options:\n"
        "  --config PATH              Load default options (repeat or comma-list)\n"
        "  --check-config             Print resolved default options and exit\n"
        "  --timeout SECONDS          Terminate COMMAND after SECONDS (<= 0: never)\n"
        "  --kill-retry MS            Grace period between TERM and KILL (default: 500)\n"
        "  --stdout PATH              Write captured stdout to PATH (appends)\n"
        "  --stderr PATH              Write captured stderr to PATH (appends)\n"
        "  --overwrite-stdout         Overwrite the --stdout file instead of appending\n"
        "  --overwrite-stderr         Overwrite the --stderr file instead of appending\n"
        "  --no-injection-check       Only require a non-empty COMMAND path\n"
        "  --tainted                  Treat COMMAND path as untrusted input\n"
        "  --replace                  Replace this process with COMMAND\n"
        "  -V, --version              Print version and exit\n"
        "  -h, --help                 Show this help and exit\n"
    )
    print(msg)


def _value(args: list[str], i: int, flag: str, what: str) -> str:
    if i + 1 >= len(args):
        raise SystemExit(f"shexecutor: {flag} requires {what}")
    return args[i + 1]


def main(argv: list[str] | None = None) -> None:
    config_paths: list[str] | None = None
    check_config = False
    overrides: dict[str, Any] = {}
    command: list[str] = []
    args = list(sys.argv[1:] if argv is None else argv)

    i = 0
    while i < len(args):
        tok = args[i]
        match tok:
            case "-h" | "--help":
                _print_help()
                return
            case "-V" | "--version":
                try:
                    ver = ilmd.version("shexecutor")
                except ilmd.PackageNotFoundError:
                    ver = "unknown"
                print(ver)
                return
            case "--check-config":
                check_config = True
                i += 1
            case "--config":
                config_paths = (config_paths or []) + [_value(args, i, tok, "a path argument")]
                i += 2
            case "--timeout":
                raw = _value(args, i, tok, "a seconds argument")
                try:
                    overrides["timeout"] = float(raw)
                except ValueError:
                    raise SystemExit(f"shexecutor: --timeout must be a number, got: {raw}")
                i += 2
            case "--kill-retry":
                raw = _value(args, i, tok, "a milliseconds argument")
                try:
                    overrides["timeout_sig_kill_retry"] = int(raw)
                except ValueError:
                    raise SystemExit(f"shexecutor: --kill-retry must be an integer, got: {raw}")
                i += 2
            case "--stdout":
                overrides["stdout_path"] = _value(args, i, tok, "a path argument")
                i += 2
            case "--stderr":
                overrides["stderr_path"] = _value(args, i, tok, "a path argument")
                i += 2
            case "--overwrite-stdout":
                overrides["append_stdout_path"] = False
                i += 1
            case "--overwrite-stderr":
                overrides["append_stderr_path"] = False
                i += 1
            case "--no-injection-check":
                overrides["protect_against_injection"] = False
                i += 1
            case "--tainted":
                overrides["tainted"] = True
                i += 1
            case "--replace":
                overrides["replace"] = True
                i += 1
            case "--":
                # Everything after -- is the command
                command = args[i + 1:]
                break
            case _:
                raise SystemExit(f"shexecutor: unknown option: {tok}")

    try:
        defaults = load_defaults(config_paths)
    except ShexecutorError as e:
        raise SystemExit(f"shexecutor: invalid config: {e}")

    if check_config:
        print(json.dumps({"sources": config_paths, "overrides": load_config(config_paths), "options": _as_dict(defaults)}, indent=2))
        return

    if not command:
        raise SystemExit("shexecutor: missing COMMAND after --")

    try:
        options = defaults.merged(overrides, application_path=command[0], params=command[1:], wait_for_completion=True)
    except ShexecutorError as e:
        raise SystemExit(f"shexecutor: {e}")

    if options.replace:
        try:
            replace_process(options)
        except (ShexecutorError, OSError) as e:
            raise SystemExit(f"shexecutor: {e}")

    result = run_command(options)
    print(json.dumps(result.to_dict(), ensure_ascii=False))


def _as_dict(options: RunOptions) -> dict[str, Any]:
    d = asdict(options)
    d["params"] = list(d["params"])
    return d


if __name__ == "__main__":
    main()

"""
Configuration loader for default execution options.

Search order (first found wins):
  1. Path in env var SHEXECUTOR_CONFIG
  2. ./shexecutor.yml or ./shexecutor.yaml
  3. ./config/shexecutor.yml or ./config/shexecutor.yaml
  4. ./shexecutor.json
If nothing is found, the built-in defaults apply. Files that fail to parse
are logged and skipped.

Options may sit at the top level or under an `options:` key. A file may
list parent files under `extends:`; parents are merged first.
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

import yaml

from .log import warn
from .types import DEFAULT_OPTIONS, OPTION_NAMES, RunOptions, options_from_mapping

# Per-call options; never taken from a defaults file
_CALL_ONLY = {"application_path", "params"}


def _try_load_yaml_text(path: Path) -> dict[str, Any] | None:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else None
    except (OSError, yaml.YAMLError) as e:
        warn("config_parse_failed", path=str(path), err=str(e))
        return None


def _try_load_json_text(path: Path) -> dict[str, Any] | None:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else None
    except (OSError, ValueError) as e:
        warn("config_parse_failed", path=str(path), err=str(e))
        return None


def _candidate_paths(cwd: Path, env_path: str | None) -> list[Path]:
    if env_path:
        return [Path(env_path)]

    return [
        cwd / "shexecutor.yml",
        cwd / "shexecutor.yaml",
        cwd / "config" / "shexecutor.yml",
        cwd / "config" / "shexecutor.yaml",
        cwd / "shexecutor.json",
    ]


def _load_one(source: str, base_dir: Path | None) -> tuple[dict[str, Any] | None, Path]:
    """Load a single config file. Returns (cfg, resolved_path)."""
    p = Path(source.strip()).expanduser()
    if not p.is_absolute() and base_dir is not None:
        p = base_dir / p
    p = p.resolve()
    if not p.exists():
        warn("config_missing", path=str(p))
        return None, p
    if p.suffix.lower() == ".json":
        return _try_load_json_text(p), p
    # .yml/.yaml and anything else: YAML is a superset of JSON
    return _try_load_yaml_text(p), p


def _options_section(cfg: dict[str, Any], origin: Path | None) -> dict[str, Any]:
    section = cfg.get("options") if isinstance(cfg.get("options"), dict) else cfg
    out: dict[str, Any] = {}
    for k, v in section.items():
        if k in ("extends", "options"):
            continue
        if k not in OPTION_NAMES or k in _CALL_ONLY:
            warn("config_unknown_key", key=k, path=str(origin) if origin else None)
            continue
        out[k] = v
    return out


def _resolve_extends(cfg: dict[str, Any], origin: Path | None, seen: set[str]) -> dict[str, Any]:
    items = cfg.get("extends")
    own = _options_section(cfg, origin)
    if isinstance(items, str):
        items = [items]
    if not isinstance(items, list) or not items:
        return own

    base_dir = origin.parent if isinstance(origin, Path) else None
    merged: dict[str, Any] = {}
    for raw in items:
        if not isinstance(raw, str) or not raw.strip():
            continue
        data, child_origin = _load_one(raw, base_dir)
        # Cycle detection key
        key = str(child_origin)
        if key in seen:
            continue
        seen.add(key)
        if isinstance(data, dict):
            merged.update(_resolve_extends(data, child_origin, seen))
    merged.update(own)
    return merged


@lru_cache(maxsize=8)
def _load_config_cached(key: tuple[str, ...] | None, cwd: str, env_path: str | None) -> dict[str, Any]:
    sources: list[str] = []
    if key:
        sources.extend(key)
    else:
        for p in _candidate_paths(Path(cwd), env_path):
            if p.exists():
                sources = [str(p)]
                break

    result: dict[str, Any] = {}
    seen: set[str] = set()
    for src in sources:
        data, origin = _load_one(src, None)
        if not isinstance(data, dict):
            continue
        seen.add(str(origin))
        result.update(_resolve_extends(data, origin, seen))
    return result


def load_config(path: str | Iterable[str] | None = None) -> dict[str, Any]:
    """
    Return the merged option overrides from config files (later sources win).

    - path: None for discovery, a path, a comma-separated list, or an iterable of paths
    """
    cwd = os.getcwd()
    env_path = os.environ.get("SHEXECUTOR_CONFIG")
    if path is None:
        return dict(_load_config_cached(None, cwd, env_path))
    if isinstance(path, str):
        # Support comma-separated list for CLI convenience
        parts = tuple(p.strip() for p in path.split(",") if p.strip())
    else:
        parts = tuple(str(p).strip() for p in path if str(p).strip())
    return dict(_load_config_cached(parts or None, cwd, env_path))


def load_defaults(path: str | Iterable[str] | None = None, base: RunOptions = DEFAULT_OPTIONS) -> RunOptions:
    """Build an immutable defaults value from config files layered over base."""
    return options_from_mapping(load_config(path), base)


def clear_cache() -> None:
    _load_config_cached.cache_clear()

"""Env-file loading and typed environment lookups.

The env file is loaded before the argument parser is built so that
values from it become parser defaults. Variables already present in the
process environment win over the file.
"""
from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Dict, Optional

DEFAULT_ENV_FILE = ".env"

_Argv = Optional[list[str]]


def _unquote(value: str) -> str:
    text = value.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in {'"', "'"}:
        return text[1:-1]
    return text


def read_env_file(path: str) -> Dict[str, str]:
    """KEY=VALUE pairs from ``path``; blank lines, comments and ``export`` are handled."""
    target = Path(path)
    if not target.is_file():
        return {}
    values: Dict[str, str] = {}
    for raw in target.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.lower().startswith("export "):
            line = line[7:].lstrip()
        key, _, value = line.partition("=")
        key = key.strip()
        if key:
            values[key] = _unquote(value)
    return values


def load_env_file(path: str, *, override: bool = False) -> Dict[str, str]:
    values = read_env_file(path)
    for key, value in values.items():
        if override or key not in os.environ:
            os.environ[key] = value
    return values


def bootstrap_env_file(argv: _Argv) -> str:
    """Pick up --env-file (or ENV_FILE) ahead of the real parser and load it."""
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--env-file", default=os.environ.get("ENV_FILE", DEFAULT_ENV_FILE))
    known, _ = pre.parse_known_args(argv)
    env_file = str(known.env_file).strip() or DEFAULT_ENV_FILE
    load_env_file(env_file)
    return env_file


def env_str(name: str, default: str) -> str:
    text = os.environ.get(name, "").strip()
    return text or default


def env_int(name: str, default: int) -> int:
    text = os.environ.get(name, "").strip()
    try:
        return int(text) if text else int(default)
    except ValueError:
        return int(default)


def env_float(name: str, default: float) -> float:
    text = os.environ.get(name, "").strip()
    try:
        return float(text) if text else float(default)
    except ValueError:
        return float(default)


def env_bool(name: str, default: bool) -> bool:
    text = os.environ.get(name, "").strip().lower()
    if text in {"1", "true", "yes", "y", "on"}:
        return True
    if text in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)

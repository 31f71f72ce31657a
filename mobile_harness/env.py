from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

_DOTENV_LOADED = False


def _repo_root() -> Path:
    # mobile_harness/env.py -> repo root is one level up
    return Path(__file__).resolve().parents[1]


def parse_key_value_lines(text: str) -> dict[str, str]:
    """
    Parse `key=value` lines (Java-properties / .env flavoured).

    - Ignores blank lines and comments starting with '#' or '!'
    - Supports optional leading 'export '
    - VALUE may be quoted; surrounding quotes are stripped
    - Lines without '=' and lines with an empty key are skipped

    Later duplicates win, as with java.util.Properties.
    """
    parsed: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line[0] in {"#", "!"}:
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        parsed[key] = value
    return parsed


def load_dotenv(*, path: Optional[str | Path] = None, override: bool = False) -> dict[str, str]:
    """
    Load a .env file into os.environ.

    Keys already present in the environment are left alone unless
    override=True. Returns a dict of keys that were set.
    """
    dotenv_path = Path(path).expanduser().resolve() if path is not None else (_repo_root() / ".env")
    if not dotenv_path.exists():
        return {}
    if dotenv_path.is_dir():
        raise RuntimeError(f".env path is a directory: {dotenv_path}")

    loaded: dict[str, str] = {}
    for key, value in parse_key_value_lines(dotenv_path.read_text(encoding="utf-8")).items():
        if not override and os.environ.get(key) is not None:
            continue
        os.environ[key] = value
        loaded[key] = value
    return loaded


def ensure_dotenv_loaded() -> dict[str, str]:
    """
    Load repo-root .env exactly once per process.
    """
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return {}
    loaded = load_dotenv()
    _DOTENV_LOADED = True
    return loaded

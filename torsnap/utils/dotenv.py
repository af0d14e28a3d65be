"""Minimal .env loader for torsnap.

The deployment keeps WEBHOOK_URL (and any TORSNAP_* overrides) in a `.env`
file next to pyproject.toml.

Policy:
- No external dependency.
- Never overrides already-set environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path


def _find_project_root(start: Path) -> Path:
    cur = start
    while True:
        if (cur / "pyproject.toml").exists():
            return cur
        if cur.parent == cur:
            return start
        cur = cur.parent


def _parse_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export ") :].lstrip()
    if "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    value = value.strip()
    if not key:
        return None
    if len(value) >= 2 and (
        (value[0] == value[-1] == '"') or (value[0] == value[-1] == "'")
    ):
        value = value[1:-1]
    return key, value


def load_dotenv_if_present(*, dotenv_path: Path | None = None) -> bool:
    """Load `.env` into os.environ.

    Rules:
    - Ignores blank lines and comments.
    - Supports optional leading `export `.
    - Supports single/double quoted values (quotes are stripped, no escapes).
    - Does NOT overwrite existing os.environ entries.

    Returns:
        True if a dotenv file existed and was parsed, else False.
    """
    if dotenv_path is None:
        root = _find_project_root(Path(__file__).resolve())
        dotenv_path = root / ".env"

    if not dotenv_path.exists():
        return False

    for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
        parsed = _parse_line(raw_line)
        if parsed is None:
            continue
        key, value = parsed
        if key not in os.environ:
            os.environ[key] = value
    return True

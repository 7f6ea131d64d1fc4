"""Atomic file helpers for settings and saved conversations."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

__all__ = ["read_json", "write_json", "write_text"]


def write_text(path: Path | str, content: str, *, encoding: str = "utf-8", atomic: bool = True) -> Path:
    """Write text to disk, replacing the target in one step when ``atomic``."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    if not atomic:
        with target.open("w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        return target

    descriptor, tmp_name = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(descriptor, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    finally:
        if os.path.exists(tmp_name):  # pragma: no cover - cleanup path
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
    return target


def write_json(path: Path | str, payload: Any, *, indent: int | None = 2) -> Path:
    return write_text(path, json.dumps(payload, ensure_ascii=False, indent=indent) + "\n")


def read_json(path: Path | str) -> Any:
    """Load JSON from ``path``; raises ``ValueError`` on malformed content."""

    target = Path(path)
    text = target.read_text(encoding="utf-8-sig")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{target.name} is not valid JSON: {exc.msg}") from exc

"""Tests for the atomic file helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentstream.utils.file_io import read_json, write_json, write_text


def test_write_text_creates_parents_and_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "dir" / "file.txt"

    write_text(target, "first")
    write_text(target, "second")

    assert target.read_text(encoding="utf-8") == "second"
    assert [path.name for path in target.parent.iterdir()] == ["file.txt"]


def test_non_atomic_write(tmp_path: Path) -> None:
    target = write_text(tmp_path / "plain.txt", "data", atomic=False)

    assert target.read_text(encoding="utf-8") == "data"


def test_json_round_trip_keeps_unicode(tmp_path: Path) -> None:
    path = write_json(tmp_path / "doc.json", {"title": "Café"})

    assert "Café" in path.read_text(encoding="utf-8")
    assert read_json(path) == {"title": "Café"}


def test_read_json_reports_malformed_content(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text("{", encoding="utf-8")

    with pytest.raises(ValueError, match="bad.json is not valid JSON"):
        read_json(path)

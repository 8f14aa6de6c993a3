from __future__ import annotations

import io
import os
import stat
from pathlib import Path

import pytest

from vprep.errors import StagingIOError
from vprep.tools.signals import DependencySignals
from vprep.tools.staging import ensure_directory, stage_tree, unique_output_dir


def _build_source(root: Path) -> Path:
    source = root / "source"
    (source / "pkg" / "nested").mkdir(parents=True)
    (source / "empty").mkdir()
    (source / ".git" / "objects").mkdir(parents=True)
    (source / ".git" / "config").write_text("[core]\n", encoding="utf-8")
    (source / ".clang-format").write_text("BasedOnStyle: Google\n", encoding="utf-8")
    (source / "top.txt").write_bytes(b"no trailing newline")
    (source / "pkg" / "code.cc").write_bytes(b"int main() {}\r\n\xe2\x9c\x93\n")
    (source / "pkg" / "nested" / "data.bin").write_bytes(bytes(range(256)))
    return source


def test_stage_tree_copies_bytes_exactly(tmp_path: Path) -> None:
    source = _build_source(tmp_path)
    dest = tmp_path / "out" / "staged"

    report = stage_tree(source, dest)

    for relative in ("top.txt", "pkg/code.cc", "pkg/nested/data.bin"):
        assert (dest / relative).read_bytes() == (source / relative).read_bytes()
    assert report.files == (Path("pkg/code.cc"), Path("pkg/nested/data.bin"), Path("top.txt"))
    assert report.directories == (Path("empty"), Path("pkg"), Path("pkg/nested"))
    assert (dest / "empty").is_dir()


def test_stage_tree_skips_hidden_entries_and_subtrees(tmp_path: Path) -> None:
    source = _build_source(tmp_path)
    dest = tmp_path / "staged"

    report = stage_tree(source, dest)

    assert not (dest / ".git").exists()
    assert not (dest / ".clang-format").exists()
    assert report.skipped == (Path(".clang-format"), Path(".git"))


def test_stage_tree_custom_hidden_prefix(tmp_path: Path) -> None:
    source = _build_source(tmp_path)
    dest = tmp_path / "staged"

    report = stage_tree(source, dest, hidden_prefix=".git")

    assert not (dest / ".git").exists()
    assert (dest / ".clang-format").exists()
    assert report.skipped == (Path(".git"),)


def test_stage_tree_empty_prefix_disables_filtering(tmp_path: Path) -> None:
    source = _build_source(tmp_path)
    dest = tmp_path / "staged"

    stage_tree(source, dest, hidden_prefix="")

    assert (dest / ".git" / "config").exists()
    assert (dest / ".git" / "objects").is_dir()


def test_stage_tree_makes_files_owner_writable(tmp_path: Path) -> None:
    source = _build_source(tmp_path)
    readonly = source / "pkg" / "readonly.h"
    readonly.write_text("#pragma once\n", encoding="utf-8")
    readonly.chmod(0o444)
    script = source / "configure"
    script.write_text("#!/bin/sh\n", encoding="utf-8")
    script.chmod(0o555)
    dest = tmp_path / "staged"

    stage_tree(source, dest)

    staged_mode = stat.S_IMODE((dest / "pkg" / "readonly.h").stat().st_mode)
    assert staged_mode & stat.S_IWUSR
    script_mode = stat.S_IMODE((dest / "configure").stat().st_mode)
    assert script_mode & stat.S_IWUSR
    assert script_mode & stat.S_IXUSR


def test_stage_tree_emits_signal_per_file(tmp_path: Path) -> None:
    source = _build_source(tmp_path)
    stream = io.StringIO()
    signals = DependencySignals(stream=stream)

    stage_tree(source, tmp_path / "staged", signals=signals)

    assert sorted(path.name for path in signals.paths) == ["code.cc", "data.bin", "top.txt"]
    lines = stream.getvalue().splitlines()
    assert len(lines) == 3
    assert all(line.startswith("cargo:rerun-if-changed=") for line in lines)
    assert f"cargo:rerun-if-changed={(source / 'top.txt').as_posix()}" in lines


def test_stage_tree_rejects_symlinks(tmp_path: Path) -> None:
    source = _build_source(tmp_path)
    (source / "pkg" / "link.cc").symlink_to(source / "pkg" / "code.cc")

    with pytest.raises(StagingIOError) as excinfo:
        stage_tree(source, tmp_path / "staged")

    assert "Unsupported file type" in str(excinfo.value)
    assert excinfo.value.details["path"].endswith("link.cc")


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="requires FIFO support")
def test_stage_tree_rejects_fifos(tmp_path: Path) -> None:
    source = _build_source(tmp_path)
    os.mkfifo(source / "pipe")

    with pytest.raises(StagingIOError):
        stage_tree(source, tmp_path / "staged")


def test_stage_tree_missing_source(tmp_path: Path) -> None:
    with pytest.raises(StagingIOError):
        stage_tree(tmp_path / "missing", tmp_path / "staged")


def test_stage_tree_replaces_file_occupying_destination(tmp_path: Path) -> None:
    source = _build_source(tmp_path)
    dest = tmp_path / "staged"
    dest.write_text("stale", encoding="utf-8")

    stage_tree(source, dest)

    assert dest.is_dir()
    assert (dest / "top.txt").exists()


def test_stage_tree_is_idempotent_over_existing_destination(tmp_path: Path) -> None:
    source = _build_source(tmp_path)
    dest = tmp_path / "staged"
    stage_tree(source, dest)
    (source / "top.txt").write_bytes(b"updated\n")

    stage_tree(source, dest)

    assert (dest / "top.txt").read_bytes() == b"updated\n"


def test_ensure_directory_replaces_regular_file(tmp_path: Path) -> None:
    target = tmp_path / "dir"
    target.write_text("file", encoding="utf-8")

    ensure_directory(target)
    ensure_directory(target)

    assert target.is_dir()


def test_unique_output_dir_creates_fresh_directories(tmp_path: Path) -> None:
    first = unique_output_dir(tmp_path / "out")
    second = unique_output_dir(tmp_path / "out")

    assert first != second
    assert first.is_dir() and second.is_dir()
    assert first.parent == tmp_path / "out"
    prefix, _, suffix = first.name.rpartition("-")
    assert prefix == "patched_deps"
    assert len(suffix) == 16
    int(suffix, 16)


def test_unique_output_dir_gives_up_after_attempts(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    base = tmp_path / "out"
    (base / "deps-0000000000000000").mkdir(parents=True)
    monkeypatch.setattr("vprep.tools.staging.secrets.token_hex", lambda _size: "0" * 16)

    with pytest.raises(StagingIOError) as excinfo:
        unique_output_dir(base, "deps", attempts=3)

    assert "Could not find a unique name" in str(excinfo.value)

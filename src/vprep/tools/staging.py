"""Mirror a pristine source tree into a build-owned staging directory."""

from __future__ import annotations

import logging
import os
import secrets
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Tuple

from ..errors import StagingIOError
from .signals import DependencySignals

LOGGER = logging.getLogger(__name__)

DEFAULT_HIDDEN_PREFIX = "."
DEFAULT_OUTPUT_NAME = "patched_deps"
_UNIQUE_ATTEMPTS = 10


@dataclass(slots=True)
class StagingReport:
    """Relative paths produced by a single staging run."""

    source_root: Path
    dest_root: Path
    files: Tuple[Path, ...] = ()
    directories: Tuple[Path, ...] = ()
    skipped: Tuple[Path, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_root": self.source_root.as_posix(),
            "dest_root": self.dest_root.as_posix(),
            "files": [path.as_posix() for path in self.files],
            "directories": [path.as_posix() for path in self.directories],
            "skipped": [path.as_posix() for path in self.skipped],
        }


@dataclass(slots=True)
class _StagingWalk:
    files: list[Path] = field(default_factory=list)
    directories: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)


def is_hidden(name: str, hidden_prefix: str) -> bool:
    """Return True when ``name`` is filtered out by ``hidden_prefix``."""
    return bool(hidden_prefix) and name.startswith(hidden_prefix)


def ensure_directory(path: Path) -> None:
    """Create ``path`` as a directory, replacing any non-directory occupying it."""
    try:
        if path.is_symlink() or (path.exists() and not path.is_dir()):
            path.unlink()
        path.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        raise StagingIOError(
            f"Unable to create directory {path}: {error}",
            details={"path": path.as_posix()},
        ) from error


def unique_output_dir(
    base: Path | str,
    name: str = DEFAULT_OUTPUT_NAME,
    *,
    attempts: int = _UNIQUE_ATTEMPTS,
) -> Path:
    """Create and return a fresh ``<base>/<name>-<hex>`` directory."""
    base_path = Path(base)
    ensure_directory(base_path)
    for _ in range(max(1, attempts)):
        candidate = base_path / f"{name}-{secrets.token_hex(8)}"
        try:
            candidate.mkdir()
        except FileExistsError:
            continue
        except OSError as error:
            raise StagingIOError(
                f"Unable to create output directory {candidate}: {error}",
                details={"path": candidate.as_posix()},
            ) from error
        return candidate
    raise StagingIOError(
        f"Could not find a unique name for {base_path / name}",
        details={"path": (base_path / name).as_posix(), "attempts": attempts},
    )


def _copy_writable(source: Path, destination: Path) -> None:
    """Copy file bytes and mode, then make the copy owner-writable."""
    if destination.is_symlink() or destination.is_file():
        destination.unlink()
    elif destination.is_dir():
        shutil.rmtree(destination)
    shutil.copyfile(source, destination)
    shutil.copymode(source, destination)
    mode = destination.stat().st_mode
    destination.chmod(stat.S_IMODE(mode) | stat.S_IWUSR)


def stage_tree(
    source_root: Path | str,
    dest_root: Path | str,
    *,
    hidden_prefix: str = DEFAULT_HIDDEN_PREFIX,
    signals: DependencySignals | None = None,
) -> StagingReport:
    """Copy ``source_root`` into ``dest_root`` preserving relative structure.

    Entries whose names start with ``hidden_prefix`` are skipped together
    with their subtrees. Anything that is neither a regular file nor a
    directory aborts the run with :class:`StagingIOError`.
    """

    source = Path(source_root)
    destination = Path(dest_root)
    if not source.is_dir() or source.is_symlink():
        raise StagingIOError(
            f"Source root is not a directory: {source}",
            details={"path": source.as_posix()},
        )

    ensure_directory(destination)
    walk = _StagingWalk()
    stack: list[Path] = [Path()]

    while stack:
        relative_dir = stack.pop()
        in_dir = source / relative_dir
        try:
            with os.scandir(in_dir) as iterator:
                entries = sorted(iterator, key=lambda item: item.name)
        except OSError as error:
            raise StagingIOError(
                f"Unable to read directory {in_dir}: {error}",
                details={"path": in_dir.as_posix()},
            ) from error

        for entry in entries:
            relative = relative_dir / entry.name
            if is_hidden(entry.name, hidden_prefix):
                walk.skipped.append(relative)
                continue
            out_path = destination / relative
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                is_file = entry.is_file(follow_symlinks=False)
            except OSError as error:
                raise StagingIOError(
                    f"Unable to inspect {entry.path}: {error}",
                    details={"path": entry.path},
                ) from error

            if is_dir:
                ensure_directory(out_path)
                walk.directories.append(relative)
                stack.append(relative)
            elif is_file:
                try:
                    _copy_writable(Path(entry.path), out_path)
                except OSError as error:
                    raise StagingIOError(
                        f"Unable to copy {entry.path} to {out_path}: {error}",
                        details={"source": entry.path, "destination": out_path.as_posix()},
                    ) from error
                walk.files.append(relative)
                if signals is not None:
                    signals.emit(entry.path)
            else:
                raise StagingIOError(
                    f"Unsupported file type for {entry.path}; only regular files and directories can be staged",
                    details={"path": entry.path},
                )

    LOGGER.debug(
        "Staged %d file(s) in %d director(ies) from %s to %s",
        len(walk.files),
        len(walk.directories),
        source,
        destination,
    )
    return StagingReport(
        source_root=source,
        dest_root=destination,
        files=tuple(sorted(walk.files, key=lambda item: item.as_posix())),
        directories=tuple(sorted(walk.directories, key=lambda item: item.as_posix())),
        skipped=tuple(sorted(walk.skipped, key=lambda item: item.as_posix())),
    )


__all__ = [
    "DEFAULT_HIDDEN_PREFIX",
    "DEFAULT_OUTPUT_NAME",
    "StagingReport",
    "ensure_directory",
    "is_hidden",
    "stage_tree",
    "unique_output_dir",
]

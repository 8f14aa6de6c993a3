"""Apply directories of unified diffs to a staged tree with exact matching."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence, Tuple

from ..errors import PatchMismatchError, PatchParseError, PatchPathError, PatchWriteError
from ..telemetry import emit_event
from .signals import DependencySignals
from .staging import DEFAULT_HIDDEN_PREFIX, is_hidden
from .unidiff import Add, Context, Patch, Remove, read_patch_set, split_lines

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PatchOutcome:
    """Result of applying one :class:`Patch` to the staged tree."""

    action: str  # "create", "modify", or "delete"
    path: Path
    hunks: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.action, "path": self.path.as_posix(), "hunks": self.hunks}


@dataclass(slots=True)
class PatchReport:
    """Patch files processed during one traversal and what they changed."""

    patch_root: Path
    target_root: Path
    patch_files: Tuple[Path, ...] = ()
    outcomes: Tuple[PatchOutcome, ...] = ()

    @property
    def touched_paths(self) -> Tuple[Path, ...]:
        return tuple(sorted({outcome.path for outcome in self.outcomes}, key=lambda item: item.as_posix()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "patch_root": self.patch_root.as_posix(),
            "target_root": self.target_root.as_posix(),
            "patch_files": [path.as_posix() for path in self.patch_files],
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


def apply_hunks(
    original_lines: Sequence[str],
    patch: Patch,
    *,
    original_ends_with_newline: bool,
    path: str | None = None,
) -> str:
    """Return the serialised new content for ``patch`` applied to ``original_lines``.

    Every context and removed line must equal the original line under the
    read cursor; the first difference raises :class:`PatchMismatchError`.
    The result ends with a line break when the patch says the new file does,
    or when the original already did.
    """

    output: list[str] = []
    cursor = 0
    total = len(original_lines)

    for number, hunk in enumerate(patch.hunks, start=1):
        start = hunk.start_index
        if start < cursor:
            raise PatchParseError(
                f"hunk #{number} for {path or patch.display_path} at line {hunk.old_start} "
                "overlaps or precedes the previous hunk"
            )
        if start > cursor:
            output.extend(original_lines[cursor:start])
            cursor = min(start, total)
            if start > total:
                raise PatchMismatchError(
                    total,
                    _first_expected(hunk.lines) or "",
                    None,
                    path=path,
                )

        for line in hunk.lines:
            if isinstance(line, Add):
                output.append(line.text)
                continue
            actual = original_lines[cursor] if cursor < total else None
            if actual != line.text:
                raise PatchMismatchError(cursor, line.text, actual, path=path)
            cursor += 1
            if isinstance(line, Context):
                output.append(line.text)

    output.extend(original_lines[cursor:])

    if not output:
        return ""
    text = "\n".join(output)
    if patch.end_newline or original_ends_with_newline:
        text += "\n"
    return text


def _first_expected(lines: Sequence[Any]) -> str | None:
    for line in lines:
        if isinstance(line, (Context, Remove)):
            return line.text
    return None


def _read_original(path: Path) -> str:
    try:
        data = path.read_bytes()
    except OSError as error:
        raise PatchPathError(
            f"Unable to read patch target {path}: {error}",
            details={"path": path.as_posix()},
        ) from error
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as error:
        raise PatchPathError(
            f"Patch target {path} is not valid UTF-8 (byte {error.start})",
            details={"path": path.as_posix()},
        ) from error


def apply_patch(patch: Patch, target_dir: Path | str) -> PatchOutcome:
    """Create, modify or delete the file ``patch`` describes under ``target_dir``."""

    root = Path(target_dir)
    old_target = patch.old_target
    new_target = patch.new_target

    if old_target is None and new_target is None:
        raise PatchParseError("patch has neither an old nor a new path")

    if old_target is None:
        original = ""
    else:
        original = _read_original(root / old_target)

    if new_target is None:
        assert old_target is not None
        old_path = root / old_target
        # Hunks of a deletion still have to match what is on disk.
        apply_hunks(
            split_lines(original),
            patch,
            original_ends_with_newline=original.endswith("\n"),
            path=old_target,
        )
        try:
            old_path.unlink()
        except OSError as error:
            raise PatchWriteError(
                f"Unable to delete {old_path}: {error}",
                details={"path": old_path.as_posix()},
            ) from error
        LOGGER.debug("Deleted %s", old_path)
        return PatchOutcome(action="delete", path=Path(old_target))

    content = apply_hunks(
        split_lines(original),
        patch,
        original_ends_with_newline=original.endswith("\n"),
        path=new_target,
    )

    new_path = root / new_target
    try:
        if old_target is None:
            new_path.parent.mkdir(parents=True, exist_ok=True)
        new_path.write_bytes(content.encode("utf-8"))
    except OSError as error:
        raise PatchWriteError(
            f"Unable to write {new_path}: {error}",
            details={"path": new_path.as_posix()},
        ) from error

    action = "create" if old_target is None else "modify"
    LOGGER.debug("Patched %s (%s, %d hunk(s))", new_path, action, len(patch.hunks))
    return PatchOutcome(action=action, path=Path(new_target), hunks=len(patch.hunks))


def apply_patch_file(
    patch_file: Path | str,
    target_dir: Path | str,
    *,
    signals: DependencySignals | None = None,
) -> list[PatchOutcome]:
    """Apply every patch held by ``patch_file`` in file order."""
    patch_path = Path(patch_file)
    if signals is not None:
        signals.emit(patch_path)
    patch_set = read_patch_set(patch_path)
    outcomes = [apply_patch(patch, target_dir) for patch in patch_set]
    emit_event(
        "patch_file_applied",
        patch_file=patch_path,
        target_dir=Path(target_dir),
        outcomes=[outcome.to_dict() for outcome in outcomes],
    )
    return outcomes


def apply_patches(
    patch_root: Path | str,
    staged_target_root: Path | str,
    *,
    hidden_prefix: str = DEFAULT_HIDDEN_PREFIX,
    signals: DependencySignals | None = None,
) -> PatchReport:
    """Walk ``patch_root`` and apply each patch file to the mirrored directory.

    A patch file found at ``<patch_root>/<rel>/<name>`` resolves its paths
    against ``<staged_target_root>/<rel>``.
    """

    patches_root = Path(patch_root)
    target_root = Path(staged_target_root)
    if not patches_root.is_dir() or patches_root.is_symlink():
        raise PatchPathError(
            f"Patch root is not a directory: {patches_root}",
            details={"path": patches_root.as_posix()},
        )

    patch_files: list[Path] = []
    outcomes: list[PatchOutcome] = []
    stack: list[Path] = [Path()]

    while stack:
        relative_dir = stack.pop()
        in_dir = patches_root / relative_dir
        try:
            with os.scandir(in_dir) as iterator:
                entries = sorted(iterator, key=lambda item: item.name)
        except OSError as error:
            raise PatchPathError(
                f"Unable to read patch directory {in_dir}: {error}",
                details={"path": in_dir.as_posix()},
            ) from error

        subdirs: list[Path] = []
        for entry in entries:
            if is_hidden(entry.name, hidden_prefix):
                continue
            relative = relative_dir / entry.name
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(relative)
            elif entry.is_file(follow_symlinks=False):
                file_outcomes = apply_patch_file(entry.path, target_root / relative_dir, signals=signals)
                patch_files.append(relative)
                outcomes.extend(
                    PatchOutcome(action=item.action, path=relative_dir / item.path, hunks=item.hunks)
                    for item in file_outcomes
                )
            else:
                raise PatchPathError(
                    f"Unsupported file type in patch directory: {entry.path}",
                    details={"path": entry.path},
                )
        # Reversed so the stack pops subdirectories in sorted order.
        stack.extend(reversed(subdirs))

    LOGGER.info("Applied %d patch file(s) to %s", len(patch_files), target_root)
    return PatchReport(
        patch_root=patches_root,
        target_root=target_root,
        patch_files=tuple(patch_files),
        outcomes=tuple(outcomes),
    )


__all__ = [
    "PatchOutcome",
    "PatchReport",
    "apply_hunks",
    "apply_patch",
    "apply_patch_file",
    "apply_patches",
]

"""Unified diff data model and a strict parser for multi-stanza patch files."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterator, Sequence, Tuple, Union

from ..errors import PatchParseError, PatchPathError

DEV_NULL = "/dev/null"

_HUNK_HEADER = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@"
)
_BINARY_MARKERS = ("GIT binary patch", "Binary files ")
_RENAME_MARKERS = ("rename from ", "rename to ", "copy from ", "copy to ")


@dataclass(frozen=True, slots=True)
class Context:
    """Unchanged line that must exist in the original file."""

    text: str


@dataclass(frozen=True, slots=True)
class Remove:
    """Line present in the original file and dropped from the new one."""

    text: str


@dataclass(frozen=True, slots=True)
class Add:
    """Line present only in the new file."""

    text: str


Line = Union[Context, Remove, Add]


@dataclass(slots=True)
class Hunk:
    """Contiguous change region anchored at a 1-based original line."""

    old_start: int
    lines: Sequence[Line] = field(default_factory=tuple)
    old_count: int | None = None
    new_start: int | None = None
    new_count: int | None = None

    @property
    def start_index(self) -> int:
        """0-based index of the first original line the hunk consumes."""
        if self.old_count == 0:
            # Pure insertions are anchored after ``old_start``.
            return max(self.old_start, 0)
        return max(self.old_start - 1, 0)

    @property
    def old_length(self) -> int:
        return sum(1 for line in self.lines if isinstance(line, (Context, Remove)))

    @property
    def new_length(self) -> int:
        return sum(1 for line in self.lines if isinstance(line, (Context, Add)))


@dataclass(slots=True)
class Patch:
    """One diff against one logical file."""

    old_path: str | None
    new_path: str | None
    hunks: Sequence[Hunk] = field(default_factory=tuple)
    end_newline: bool = True

    @property
    def old_target(self) -> str | None:
        return normalise_diff_path(self.old_path)

    @property
    def new_target(self) -> str | None:
        return normalise_diff_path(self.new_path)

    @property
    def action(self) -> str:
        if self.old_target is None:
            return "create"
        if self.new_target is None:
            return "delete"
        return "modify"

    @property
    def display_path(self) -> str:
        return self.new_target or self.old_target or "<unknown>"


@dataclass(slots=True)
class PatchSet:
    """Ordered patches decoded from a single patch file."""

    patches: Tuple[Patch, ...] = ()
    source: str | None = None

    def __iter__(self) -> Iterator[Patch]:
        return iter(self.patches)

    def __len__(self) -> int:
        return len(self.patches)


def normalise_diff_path(entry: str | None) -> str | None:
    """Strip ``a/``/``b/`` prefixes and map ``/dev/null`` to ``None``.

    Absolute paths and ``..`` segments are rejected so a patch can never
    reach outside the staged tree.
    """
    if entry is None:
        return None
    candidate = entry.strip()
    if not candidate or candidate == DEV_NULL:
        return None
    if candidate.startswith(("a/", "b/")):
        candidate = candidate[2:]
    if not candidate:
        return None
    pure = PurePosixPath(candidate)
    if pure.is_absolute():
        raise PatchPathError(
            f"Absolute paths are not permitted in patches: {candidate}",
            details={"path": candidate},
        )
    if any(part == ".." for part in pure.parts):
        raise PatchPathError(
            f"Path escaping detected in patch: {candidate}",
            details={"path": candidate},
        )
    return pure.as_posix()


def split_lines(text: str) -> list[str]:
    """Split ``text`` on ``\\n`` only, dropping the empty tail after a final break."""
    if not text:
        return []
    lines = text.split("\n")
    if text.endswith("\n"):
        lines.pop()
    return lines


def validate_hunk_order(
    hunks: Sequence[Hunk],
    *,
    source: str | None = None,
    path: str | None = None,
) -> None:
    """Reject hunks that run backwards or overlap earlier hunks."""
    consumed = 0
    for number, hunk in enumerate(hunks, start=1):
        start = hunk.start_index
        if start < consumed:
            label = f" for {path}" if path else ""
            raise PatchParseError(
                f"hunk #{number}{label} at line {hunk.old_start} overlaps or precedes the previous hunk",
                source=source,
            )
        consumed = start + hunk.old_length


def _header_operand(line: str) -> str:
    """Return the path part of a ``---``/``+++`` header, dropping timestamps."""
    operand = line[4:]
    return operand.split("\t", 1)[0].rstrip()


def _is_stray_body_line(line: str) -> bool:
    """Return True for a hunk body line that no hunk header accounts for."""
    # Next file header, mail separator and signature.
    if line.startswith("--- ") or line in {"---", "-- "}:
        return False
    return line[:1] in {"+", "-", " "}


class _PatchParser:
    """Line cursor over the text of one patch file."""

    def __init__(self, text: str, source: str | None) -> None:
        self.lines = split_lines(text)
        self.source = source
        self.index = 0

    def error(self, message: str, line: int | None = None) -> PatchParseError:
        return PatchParseError(message, source=self.source, line=line if line is not None else self.index + 1)

    def parse(self) -> PatchSet:
        patches: list[Patch] = []
        while self.index < len(self.lines):
            line = self.lines[self.index]
            if line.startswith("--- "):
                patches.append(self._parse_patch())
                continue
            if line.startswith(_BINARY_MARKERS):
                raise self.error("binary patches are not supported")
            if line.startswith(_RENAME_MARKERS):
                raise self.error("rename and copy patches are not supported")
            if line.startswith("@@"):
                raise self.error("hunk header without a preceding '---'/'+++' file header")
            self.index += 1
        if not patches:
            raise PatchParseError("no unified diff stanzas found", source=self.source)
        return PatchSet(patches=tuple(patches), source=self.source)

    def _parse_patch(self) -> Patch:
        old_line = self.lines[self.index]
        self.index += 1
        if self.index >= len(self.lines) or not self.lines[self.index].startswith("+++ "):
            raise self.error("expected '+++' header after '---' header")
        new_line = self.lines[self.index]
        self.index += 1

        old_path = _header_operand(old_line) or None
        new_path = _header_operand(new_line) or None
        if normalise_diff_path(old_path) is None and normalise_diff_path(new_path) is None:
            raise self.error("both old and new paths are absent", line=self.index - 1)

        hunks: list[Hunk] = []
        end_newline = True
        while self.index < len(self.lines) and self.lines[self.index].startswith("@@"):
            hunk, new_side_unterminated = self._parse_hunk()
            hunks.append(hunk)
            if new_side_unterminated:
                end_newline = False

        patch = Patch(old_path=old_path, new_path=new_path, hunks=tuple(hunks), end_newline=end_newline)
        if not hunks and patch.new_target is not None:
            raise self.error(f"patch for {patch.display_path} has no hunks")
        validate_hunk_order(patch.hunks, source=self.source, path=patch.display_path)
        return patch

    def _parse_hunk(self) -> tuple[Hunk, bool]:
        header_line = self.index + 1
        match = _HUNK_HEADER.match(self.lines[self.index])
        if not match:
            raise self.error(f"malformed hunk header: {self.lines[self.index]}")
        old_count = int(match.group("old_count")) if match.group("old_count") is not None else 1
        new_count = int(match.group("new_count")) if match.group("new_count") is not None else 1
        self.index += 1

        body: list[Line] = []
        seen_old = 0
        seen_new = 0
        unterminated = False
        last: Line | None = None

        while seen_old < old_count or seen_new < new_count:
            if self.index >= len(self.lines):
                raise self.error(
                    f"hunk ends before its line counts are satisfied "
                    f"(expected -{old_count}/+{new_count}, saw -{seen_old}/+{seen_new})",
                    line=header_line,
                )
            raw = self.lines[self.index]
            if raw.startswith("\\"):
                if last is None:
                    raise self.error("'no newline' marker without a preceding line")
                unterminated = unterminated or isinstance(last, (Context, Add))
                self.index += 1
                continue

            line: Line
            if raw == "" or raw[0] == " ":
                line = Context(raw[1:])
                seen_old += 1
                seen_new += 1
            elif raw[0] == "-":
                line = Remove(raw[1:])
                seen_old += 1
            elif raw[0] == "+":
                line = Add(raw[1:])
                seen_new += 1
            else:
                raise self.error(f"unexpected line in hunk body: {raw!r}")
            if seen_old > old_count or seen_new > new_count:
                raise self.error(
                    f"hunk body exceeds its header counts (expected -{old_count}/+{new_count})"
                )
            body.append(line)
            last = line
            self.index += 1

        if self.index < len(self.lines) and self.lines[self.index].startswith("\\"):
            if last is None:
                raise self.error("'no newline' marker without a preceding line")
            unterminated = unterminated or isinstance(last, (Context, Add))
            self.index += 1

        if self.index < len(self.lines) and _is_stray_body_line(self.lines[self.index]):
            raise self.error(
                f"hunk body exceeds its header counts (expected -{old_count}/+{new_count})"
            )

        hunk = Hunk(
            old_start=int(match.group("old_start")),
            lines=tuple(body),
            old_count=old_count,
            new_start=int(match.group("new_start")),
            new_count=new_count,
        )
        return hunk, unterminated


def parse_patch_set(text: str, *, source: str | None = None) -> PatchSet:
    """Decode the text of one patch file into its ordered patches."""
    return _PatchParser(text, source).parse()


def read_patch_set(path: Path | str) -> PatchSet:
    """Read ``path`` as strict UTF-8 and parse every diff stanza it holds."""
    patch_path = Path(path)
    try:
        data = patch_path.read_bytes()
    except OSError as error:
        raise PatchPathError(
            f"Unable to read patch file {patch_path}: {error}",
            details={"path": patch_path.as_posix()},
        ) from error
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as error:
        raise PatchParseError(
            f"patch is not valid UTF-8 (byte {error.start})",
            source=patch_path.as_posix(),
        ) from error
    return parse_patch_set(text, source=patch_path.as_posix())


__all__ = [
    "Add",
    "Context",
    "DEV_NULL",
    "Hunk",
    "Line",
    "Patch",
    "PatchSet",
    "Remove",
    "normalise_diff_path",
    "parse_patch_set",
    "read_patch_set",
    "split_lines",
    "validate_hunk_order",
]

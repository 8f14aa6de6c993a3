"""Build-dependency signals consumed by the surrounding build orchestrator."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from ..errors import DepfileWriteError

DEFAULT_TEMPLATE = "cargo:rerun-if-changed={path}"


@dataclass(slots=True)
class DependencySignals:
    """Record and announce every input path the build depends on."""

    template: str = DEFAULT_TEMPLATE
    stream: TextIO | None = None
    quiet: bool = False
    _paths: list[Path] = field(default_factory=list, init=False, repr=False)

    def emit(self, path: Path | str) -> None:
        resolved = Path(path)
        self._paths.append(resolved)
        if self.quiet:
            return
        stream = self.stream if self.stream is not None else sys.stdout
        stream.write(self.template.format(path=resolved.as_posix()) + "\n")

    @property
    def paths(self) -> tuple[Path, ...]:
        return tuple(self._paths)

    def write_depfile(self, depfile: Path | str, target: Path | str) -> Path:
        """Write a Makefile-style dependency file listing every emitted path."""
        depfile_path = Path(depfile)
        deps = " \\\n  ".join(_escape_make_path(path) for path in self._paths)
        line = f"{_escape_make_path(Path(target))}:"
        if deps:
            line += f" {deps}"
        try:
            depfile_path.parent.mkdir(parents=True, exist_ok=True)
            depfile_path.write_text(line + "\n", encoding="utf-8")
        except OSError as error:
            raise DepfileWriteError(
                f"Unable to write dependency file {depfile_path}: {error}",
                details={"path": depfile_path.as_posix()},
            ) from error
        return depfile_path


def _escape_make_path(path: Path) -> str:
    return path.as_posix().replace("$", "$$").replace(" ", "\\ ")


__all__ = ["DEFAULT_TEMPLATE", "DependencySignals"]

from __future__ import annotations

import os
import subprocess
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@dataclass(slots=True)
class VendorProject:
    """Fixture payload describing a small vendored tree with patches."""

    root: Path
    source: Path
    patches: Path
    config_path: Path

    def run_cli(self, *args: str) -> subprocess.CompletedProcess[str]:
        """Invoke ``python -m vprep.cli`` with the provided arguments."""

        env = os.environ.copy()
        pythonpath = str(SRC)
        if env.get("PYTHONPATH"):
            pythonpath = os.pathsep.join([pythonpath, env["PYTHONPATH"]])
        env["PYTHONPATH"] = pythonpath
        env.pop("VPREP_OUTPUT_DIR", None)

        command = [sys.executable, "-m", "vprep.cli", *args]
        return subprocess.run(  # noqa: S603 - command constructed from known values
            command,
            cwd=self.root,
            env=env,
            capture_output=True,
            text=True,
            check=False,
        )


@pytest.fixture()
def vendor_project(tmp_path: Path) -> VendorProject:
    """Create a vendored source tree, a mirrored patch directory and a config."""

    root = tmp_path / "project"
    source = root / "c_src"
    (source / "lib").mkdir(parents=True)
    (source / ".git").mkdir()
    (source / ".git" / "HEAD").write_text("ref: refs/heads/main\n", encoding="utf-8")
    (source / "README").write_text("vendored\n", encoding="utf-8")
    (source / "lib" / "alloc.cc").write_text(
        textwrap.dedent(
            """
            #include "alloc.h"

            int page_size() {
              return 8192;
            }
            """
        ).lstrip(),
        encoding="utf-8",
    )

    patches = root / "patches"
    (patches / "lib").mkdir(parents=True)
    (patches / "lib" / "page_size.patch").write_text(
        textwrap.dedent(
            """
            diff --git a/alloc.cc b/alloc.cc
            index 1111111..2222222 100644
            --- a/alloc.cc
            +++ b/alloc.cc
            @@ -3,3 +3,3 @@
             int page_size() {
            -  return 8192;
            +  return 32768;
             }
            diff --git a/extra.h b/extra.h
            new file mode 100644
            --- /dev/null
            +++ b/extra.h
            @@ -0,0 +1,2 @@
            +#pragma once
            +#define EXTRA 1
            """
        ).lstrip(),
        encoding="utf-8",
    )

    config_path = root / "vprep.yaml"
    config_path.write_text(
        textwrap.dedent(
            """
            paths:
              source: c_src
              patches: patches
              output: build
            signals:
              enabled: true
            build:
              features: [32k-pages]
            """
        ).lstrip(),
        encoding="utf-8",
    )

    return VendorProject(root=root, source=source, patches=patches, config_path=config_path)

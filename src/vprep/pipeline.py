"""Stage a vendored tree and patch it, in that order."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import PipelineConfig
from .errors import VendorPrepError
from .features import PageSize
from .telemetry import emit_event
from .tools.patch import PatchReport, apply_patches
from .tools.signals import DependencySignals
from .tools.staging import StagingReport, ensure_directory, stage_tree, unique_output_dir

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineResult:
    """Everything one pipeline run produced."""

    output_dir: Path
    staged_root: Path
    staging: StagingReport
    patching: PatchReport | None = None
    page_size: PageSize | None = None
    depfile: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "output_dir": self.output_dir.as_posix(),
            "staged_root": self.staged_root.as_posix(),
            "staging": self.staging.to_dict(),
            "patching": self.patching.to_dict() if self.patching else None,
            "page_size": self.page_size.value if self.page_size else None,
            "page_size_define": self.page_size.define if self.page_size else None,
            "depfile": self.depfile.as_posix() if self.depfile else None,
        }


def signals_from_config(config: PipelineConfig) -> DependencySignals:
    """Build the dependency signal sink described by ``config.signals``."""
    return DependencySignals(template=config.signals.template, quiet=not config.signals.enabled)


def prepare_vendor_tree(
    config: PipelineConfig,
    *,
    signals: DependencySignals | None = None,
) -> PipelineResult:
    """Run staging then patch application; the first error aborts the run."""

    sink = signals if signals is not None else signals_from_config(config)

    emit_event(
        "pipeline_started",
        source=config.paths.source,
        patches=config.paths.patches,
        output=config.paths.output,
    )
    try:
        # Feature selection is validated before touching the filesystem.
        page_size = config.page_size()
        if config.staging.unique_output:
            output_dir = unique_output_dir(config.paths.output, config.staging.output_name)
        else:
            output_dir = config.paths.output
            ensure_directory(output_dir)

        staged_root = output_dir / config.paths.source.name
        staging = stage_tree(
            config.paths.source,
            staged_root,
            hidden_prefix=config.staging.hidden_prefix,
            signals=sink,
        )
        LOGGER.info("Staged %d file(s) into %s", len(staging.files), staged_root)

        patching: PatchReport | None = None
        if config.paths.patches is not None:
            patching = apply_patches(
                config.paths.patches,
                staged_root,
                hidden_prefix=config.staging.hidden_prefix,
                signals=sink,
            )

        depfile: Path | None = None
        if config.signals.depfile is not None:
            depfile = sink.write_depfile(config.signals.depfile, staged_root)
    except VendorPrepError as error:
        emit_event("pipeline_failed", error=str(error), error_type=type(error).__name__, details=error.details)
        raise

    result = PipelineResult(
        output_dir=output_dir,
        staged_root=staged_root,
        staging=staging,
        patching=patching,
        page_size=page_size,
        depfile=depfile,
    )
    emit_event("pipeline_completed", result=result.to_dict())
    return result


__all__ = ["PipelineResult", "prepare_vendor_tree", "signals_from_config"]

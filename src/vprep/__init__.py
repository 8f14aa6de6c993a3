"""Stage vendored source trees and apply unified-diff patches to them."""

from .errors import (
    ConfigError,
    DepfileWriteError,
    PatchMismatchError,
    PatchParseError,
    PatchPathError,
    PatchWriteError,
    StagingIOError,
    VendorPrepError,
)
from .pipeline import PipelineResult, prepare_vendor_tree
from .tools import apply_patches, stage_tree

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "DepfileWriteError",
    "PatchMismatchError",
    "PatchParseError",
    "PatchPathError",
    "PatchWriteError",
    "PipelineResult",
    "StagingIOError",
    "VendorPrepError",
    "__version__",
    "apply_patches",
    "prepare_vendor_tree",
    "stage_tree",
]

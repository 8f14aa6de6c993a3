"""Staging, diff parsing and patch application tools."""

from .patch import PatchOutcome, PatchReport, apply_hunks, apply_patch, apply_patch_file, apply_patches
from .signals import DependencySignals
from .staging import StagingReport, stage_tree, unique_output_dir
from .unidiff import Add, Context, Hunk, Patch, PatchSet, Remove, parse_patch_set, read_patch_set

__all__ = [
    "Add",
    "Context",
    "DependencySignals",
    "Hunk",
    "Patch",
    "PatchOutcome",
    "PatchReport",
    "PatchSet",
    "Remove",
    "StagingReport",
    "apply_hunks",
    "apply_patch",
    "apply_patch_file",
    "apply_patches",
    "parse_patch_set",
    "read_patch_set",
    "stage_tree",
    "unique_output_dir",
]

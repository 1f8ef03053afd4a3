"""Zip primitives: subset carving, directory archiving and replacement, temp files."""

from .directory import clear_directory, extract_archive, replace_directory_contents, zip_directory
from .subset import extract_subset, normalize_entry_name
from .temporary import TemporaryArtifact, with_temporary_artifact

__all__ = [
    "extract_subset",
    "normalize_entry_name",
    "zip_directory",
    "extract_archive",
    "clear_directory",
    "replace_directory_contents",
    "TemporaryArtifact",
    "with_temporary_artifact",
]

"""Deployment archives for Go functions on AWS Lambda."""

from lago.filesystem import (
    SOURCE_EXTENSIONS,
    ExcludedFileError,
    PackagingError,
    UnsupportedFileTypeError,
    archive_name,
    is_excluded,
    pack_flat,
    pack_tree,
)

__version__ = "0.1.0"

__all__ = [
    "SOURCE_EXTENSIONS",
    "ExcludedFileError",
    "PackagingError",
    "UnsupportedFileTypeError",
    "archive_name",
    "is_excluded",
    "pack_flat",
    "pack_tree",
]

"""
Packing of static files into a Lambda deployment zip.

pack_flat writes a single file, or the regular files directly inside a
directory. pack_tree writes every regular file below a directory, keeping
its layout relative to the root. Both write into a zipfile.ZipFile that the
caller opened and will close.
"""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
import stat
import zipfile

logger = logging.getLogger(__name__)

# Source files that stay out of the bundle unless all files are requested.
# Matching is case-sensitive: ".s" and ".S" are both listed on purpose.
SOURCE_EXTENSIONS = frozenset(
    {
        ".go",
        ".c",
        ".h",
        ".cc",
        ".cpp",
        ".cxx",
        ".hh",
        ".hpp",
        ".hxx",
        ".m",
        ".s",
        ".S",
        ".swig",
        ".swigcxx",
        ".syso",
    }
)


class PackagingError(Exception):
    """Base class for files the packer refuses to write."""


class UnsupportedFileTypeError(PackagingError):
    def __init__(self, path: str):
        super().__init__(f"Not a regular file: {path}")
        self.path = path


class ExcludedFileError(PackagingError):
    def __init__(self, path: str):
        super().__init__(f"All files not specified: {path}")
        self.path = path


def extension(name: str) -> str:
    """Suffix of the last path element starting at its final dot, or ''."""
    name = os.path.basename(name)
    i = name.rfind(".")
    return name[i:] if i >= 0 else ""


def is_excluded(name: str, extensions: frozenset[str] = SOURCE_EXTENSIONS) -> bool:
    return extension(name) in extensions


# ── Entry naming and headers ─────────────────────────────────


def archive_name(base: str, name: str) -> str:
    """Join base and name into a forward-slash zip entry name below the zip root."""
    parts = posixpath.normpath(posixpath.join(base, name)).lstrip("/").split("/")
    while parts and parts[0] == "..":
        parts.pop(0)
    return "/".join(parts)


def entry_header(path: str, name: str, sink: zipfile.ZipFile) -> zipfile.ZipInfo:
    """
    Build the zip header for path stored under name.
    Mode bits and mtime come from the file; compression from the sink.
    """
    zinfo = zipfile.ZipInfo.from_file(path, arcname=name, strict_timestamps=False)
    zinfo.compress_type = sink.compression
    return zinfo


def write_entry(sink: zipfile.ZipFile, path: str, zinfo: zipfile.ZipInfo) -> None:
    """Stream path into sink under zinfo. The file is closed on every exit."""
    logger.debug(f"Adding {path} as {zinfo.filename}")
    with open(path, "rb") as src, sink.open(zinfo, "w") as dst:
        shutil.copyfileobj(src, dst)


# ── Flat packing ─────────────────────────────────────────────


def pack_flat(
    sink: zipfile.ZipFile, root: str, base: str = "", all_files: bool = False
) -> int:
    """
    Write root (or the regular files directly inside it) to sink at base.

    A single named file that is excluded raises ExcludedFileError, while
    excluded files found in a directory are skipped. Subdirectories are never
    descended into. Returns the number of entries written.
    """
    st = os.stat(root)
    if not stat.S_ISDIR(st.st_mode):
        if not stat.S_ISREG(st.st_mode):
            raise UnsupportedFileTypeError(root)
        if not all_files and is_excluded(root):
            raise ExcludedFileError(root)
        name = archive_name(base, os.path.basename(root))
        write_entry(sink, root, entry_header(root, name, sink))
        return 1

    written = 0
    with os.scandir(root) as entries:
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                continue
            if not entry.is_file(follow_symlinks=False):
                continue
            if not all_files and is_excluded(entry.name):
                logger.debug(f"Skipping source file {entry.path}")
                continue
            name = archive_name(base, entry.name)
            write_entry(sink, entry.path, entry_header(entry.path, name, sink))
            written += 1
    return written


# ── Tree packing ─────────────────────────────────────────────


def _raise(err: OSError) -> None:
    raise err


def pack_tree(
    sink: zipfile.ZipFile, root: str, base: str = "", all_files: bool = False
) -> int:
    """
    Write every regular file below root to sink, named by its path relative
    to root joined onto base. Directories and symlinks produce no entries.
    Returns the number of entries written.
    """
    st = os.stat(root)
    if not stat.S_ISDIR(st.st_mode):
        logger.warning(f"{root} is not a directory, nothing to walk")
        return 0

    written = 0
    for dirpath, _dirnames, filenames in os.walk(root, onerror=_raise):
        for filename in filenames:
            path = os.path.join(dirpath, filename)
            if not stat.S_ISREG(os.lstat(path).st_mode):
                continue
            if not all_files and is_excluded(filename):
                logger.debug(f"Skipping source file {path}")
                continue
            rel = os.path.relpath(path, root).replace(os.sep, "/")
            write_entry(sink, path, entry_header(path, archive_name(base, rel), sink))
            written += 1
    return written

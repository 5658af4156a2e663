"""
Assembly of a deployment zip: the compiled handler binary plus any number of
[base:]path static file requests.
"""

from __future__ import annotations

import io
import logging
import os
import shutil
import zipfile

from pydantic import BaseModel

from lago.filesystem import (
    PackagingError,
    entry_header,
    pack_flat,
    pack_tree,
    write_entry,
)

logger = logging.getLogger(__name__)

# r-xr-xr-x, regardless of what the build left on disk
BINARY_MODE = 0o555


class PackagingRequest(BaseModel):
    """One static file argument: what to read and where it lands in the zip."""

    path: str
    base: str = ""
    recursive: bool = False

    def pack(self, sink: zipfile.ZipFile, all_files: bool = False) -> int:
        packer = pack_tree if self.recursive else pack_flat
        count = packer(sink, self.path, self.base, all_files)
        logger.info(
            f"Packed {count} file(s) from {self.path} at '{self.base or '/'}'"
            f"{' recursively' if self.recursive else ''}"
        )
        return count


def parse_request(token: str, sep: str = os.pathsep) -> PackagingRequest:
    """
    Parse "base<sep>path" or "path". A path ending in a separator asks for
    the directory contents to be added recursively.
    """
    base, found, path = token.partition(sep)
    if not found:
        base, path = "", token
    recursive = path.endswith(os.sep) or path.endswith("/")
    return PackagingRequest(path=path, base=base, recursive=recursive)


def write_binary(sink: zipfile.ZipFile, path: str, name: str) -> None:
    """Write the handler executable at the top of the zip with mode 0555."""
    zinfo = entry_header(path, name, sink)
    zinfo.external_attr = ((0o100000 | BINARY_MODE) & 0xFFFF) << 16
    write_entry(sink, path, zinfo)


def build_archive(
    binary: str, name: str, tokens: list[str], all_files: bool = False
) -> bytes:
    """Zip the handler binary and every static file request into memory."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        write_binary(zf, binary, name)
        for token in tokens:
            parse_request(token).pack(zf, all_files)
    return buf.getvalue()


def build_tree_archive(directory: str) -> bytes:
    """Zip everything below directory, source files included."""
    if not os.path.isdir(directory):
        raise NotADirectoryError(f"Input {directory} is not a directory")
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        count = pack_tree(zf, directory, "", True)
    logger.info(f"Packed {count} file(s) from {directory}")
    return buf.getvalue()


def extract_archive(data: bytes, destination: str) -> list[str]:
    """Unpack a function's code zip under destination. Returns entry names."""
    root = os.path.realpath(destination)
    names = []
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        for info in zf.infolist():
            target = os.path.realpath(os.path.join(root, *info.filename.split("/")))
            if os.path.commonpath([root, target]) != root:
                raise PackagingError(f"Entry {info.filename} escapes {destination}")
            if info.is_dir():
                os.makedirs(target, exist_ok=True)
                continue
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with zf.open(info) as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
            names.append(info.filename)
    return names

"""Pytest configuration."""
import os
import sys
from pathlib import Path

import pytest

# Keep boto3 away from real credentials and regions
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")

root = Path(__file__).resolve().parent.parent
if str(root) not in sys.path:
    sys.path.insert(0, str(root))


@pytest.fixture
def static_dir(tmp_path):
    """static/ with test1.txt, test2.txt and html/index.html."""
    static = tmp_path / "static"
    (static / "html").mkdir(parents=True)
    (static / "test1.txt").write_text("one")
    (static / "test2.txt").write_text("two")
    (static / "html" / "index.html").write_text("<html></html>")
    return static


@pytest.fixture
def mixed_dir(tmp_path):
    """A directory holding both data files and Go/C sources."""
    mixed = tmp_path / "mixed"
    mixed.mkdir()
    for name in ("main.go", "lib.c", "lib.h", "boot.S", "data.json", "README"):
        (mixed / name).write_text(name)
    return mixed

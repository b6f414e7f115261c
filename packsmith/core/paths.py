"""Path and URI helpers for buildpack and application locations."""

from __future__ import annotations

import re
import zipfile
from pathlib import Path
from urllib.parse import unquote, urlparse

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")


def is_uri(location: str) -> bool:
    return bool(_SCHEME_RE.match(location))


def uri_to_file_path(uri: str) -> Path:
    """Convert a ``file://`` URI to a local path."""
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        raise ValueError(f"not a file URI: {uri}")
    return Path(unquote(parsed.path))


def is_dir(path: str | Path) -> bool:
    return Path(path).is_dir()


def is_zip(path: Path) -> bool:
    """Whether *path* is a zip archive (checked by content, not extension)."""
    return zipfile.is_zipfile(path)

"""SHA-256 helpers: layer diff IDs, file digests and JSON content addresses."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

_CHUNK_SIZE = 1 << 20


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize *obj* so equal values always give equal bytes.

    Keys are sorted, separators carry no whitespace and output is ASCII.
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    """Hex digest of a file, read in 1 MiB chunks."""
    digest = hashlib.sha256()
    with Path(path).open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def content_address(obj: Any) -> str:
    """``sha256:<hex>`` of the canonical JSON form of *obj*.

    Used for image identifiers and content-derived scratch builder names.
    """
    return f"sha256:{sha256_hex(canonical_json_bytes(obj))}"


def diff_id(data: bytes) -> str:
    """Diff ID of an uncompressed layer tar."""
    return f"sha256:{sha256_hex(data)}"

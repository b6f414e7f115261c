"""Layer blob store keyed by diff ID.

Layer tars live at ``{base_path}/{hex[0:2]}/{hex[2:4]}/{hex}.dat``. Blobs are
shared between images, so the store never deletes or rewrites one.
"""

from __future__ import annotations

from pathlib import Path

from packsmith.core.errors import PackIOError
from packsmith.core.hasher import sha256_file, sha256_hex


class BlobIntegrityError(PackIOError):
    """A stored layer no longer hashes to its diff ID."""

    def __init__(self, digest: str) -> None:
        super().__init__("verifying blob", f"sha256:{digest} failed integrity check")
        self.digest = digest


class BlobStore:
    """Immutable store for uncompressed layer tars.

    A layer's diff ID is the SHA-256 of its bytes, so it doubles as the
    storage key. Storing a layer that is already present only re-verifies it.

    Parameters
    ----------
    base_path:
        Directory holding the blob tree.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _digest(diff_id: str) -> str:
        return diff_id.removeprefix("sha256:")

    def _path(self, digest: str) -> Path:
        return self._base / digest[:2] / digest[2:4] / f"{digest}.dat"

    def store(self, data: bytes) -> None:
        """Persist *data* under its own digest.

        Raises ``BlobIntegrityError`` when a blob with the same digest is
        already on disk but its bytes have changed.
        """
        digest = sha256_hex(data)
        path = self._path(digest)

        if path.exists():
            if not self.verify(digest):
                raise BlobIntegrityError(digest)
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            partial = path.with_suffix(".partial")
            partial.write_bytes(data)
            partial.replace(path)

    def retrieve(self, diff_id: str) -> bytes:
        """Bytes of the layer with *diff_id* (``sha256:<hex>`` or bare hex)."""
        path = self._path(self._digest(diff_id))
        if not path.exists():
            raise FileNotFoundError(f"no blob stored for {diff_id}")
        return path.read_bytes()

    def exists(self, diff_id: str) -> bool:
        return self._path(self._digest(diff_id)).exists()

    def verify(self, diff_id: str) -> bool:
        """Whether the stored blob still hashes to *diff_id*; False if absent."""
        digest = self._digest(diff_id)
        path = self._path(digest)
        if not path.exists():
            return False
        return sha256_file(path) == digest

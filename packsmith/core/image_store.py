"""Local, file-backed image store implementing the image contract.

Directory layout::

    {base_path}/
        blobs/{sha256[0:2]}/{sha256[2:4]}/{sha256}.dat   — layer tars
        daemon/{sha256(name)}.json                       — local images
        registry/{sha256(name)}.json                     — published images

``daemon`` plays the part of a container runtime's image cache and
``registry`` the part of a remote registry: ``new_image(local=False)`` saves
to the registry namespace, and ``fetch(daemon=True, pull=True)`` refreshes the
local copy from it.
"""

from __future__ import annotations

import io
import logging
import tarfile
from pathlib import Path

from pydantic import ValidationError

from packsmith.core.blob_store import BlobStore
from packsmith.core.errors import ErrorKind, FetchError, PackIOError, symbol
from packsmith.core.hasher import content_address, diff_id, sha256_hex
from packsmith.core.reference import ImageReference
from packsmith.models.images import ImageRecord

logger = logging.getLogger(__name__)


def _normalize(name: str) -> str:
    return ImageReference.parse(name).name


class LocalImage:
    """Mutable image handle backed by a ``LocalImageStore``.

    Added layers are held in memory until ``save()``, so an abandoned handle
    writes nothing.
    """

    def __init__(
        self,
        store: LocalImageStore,
        name: str,
        *,
        local: bool,
        record: ImageRecord | None = None,
    ) -> None:
        self._store = store
        self._name = name
        self._local = local
        self._found = record is not None
        self._labels: dict[str, str] = dict(record.labels) if record else {}
        self._layers: list[str] = list(record.layers) if record else []
        self._pending: dict[str, bytes] = {}

    # ------------------------------------------------------------------
    # Image protocol
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    def rename(self, name: str) -> None:
        self._name = name

    def label(self, key: str) -> str:
        return self._labels.get(key, "")

    def set_label(self, key: str, value: str) -> None:
        self._labels[key] = value

    def add_layer(self, path: Path) -> None:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise PackIOError("reading layer tar", f"{path}: {exc}") from exc
        layer_id = diff_id(data)
        self._pending[layer_id] = data
        self._layers.append(layer_id)

    def identifier(self) -> str:
        return content_address({"labels": self._labels, "layers": self._layers})

    def found(self) -> bool:
        return self._found

    def save(self) -> None:
        try:
            for data in self._pending.values():
                self._store.blobs.store(data)
            self._store.write_record(
                ImageRecord(name=self._name, labels=self._labels, layers=self._layers),
                daemon=self._local,
            )
        except OSError as exc:
            raise PackIOError("saving image", f"{symbol(self._name)}: {exc}") from exc
        self._pending.clear()
        self._found = True
        logger.debug("Saved image %s with %d layer(s)", self._name, len(self._layers))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def labels(self) -> dict[str, str]:
        return dict(self._labels)

    @property
    def layers(self) -> list[str]:
        """Diff IDs of all layers, bottom first."""
        return list(self._layers)

    def layer_bytes(self, layer_id: str) -> bytes:
        if layer_id in self._pending:
            return self._pending[layer_id]
        return self._store.blobs.retrieve(layer_id)

    def find_layer_with_path(self, path: str) -> bytes:
        """Return the topmost layer tar containing *path*.

        Raises ``FileNotFoundError`` when no layer has an entry for it.
        """
        wanted = path.strip("/")
        for layer_id in reversed(self._layers):
            data = self.layer_bytes(layer_id)
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
                if any(m.name.strip("/") == wanted for m in tar.getmembers()):
                    return data
        raise FileNotFoundError(f"no layer of {self._name} contains {path}")


class LocalImageStore:
    """File-backed ``ImageFactory``, ``ImageFetcher`` and ``ImageRemover``.

    Parameters
    ----------
    base_path:
        Root directory for blobs and image records.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self.blobs = BlobStore(self._base / "blobs")
        for namespace in ("daemon", "registry"):
            (self._base / namespace).mkdir(parents=True, exist_ok=True)

    def _record_path(self, name: str, daemon: bool) -> Path:
        namespace = "daemon" if daemon else "registry"
        key = sha256_hex(_normalize(name).encode("utf-8"))
        return self._base / namespace / f"{key}.json"

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def write_record(self, record: ImageRecord, *, daemon: bool) -> None:
        path = self._record_path(record.name, daemon)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(record.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(path)

    def read_record(self, name: str, *, daemon: bool) -> ImageRecord | None:
        path = self._record_path(name, daemon)
        if not path.exists():
            return None
        try:
            return ImageRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            raise PackIOError("reading image record", f"{symbol(name)}: {exc}") from exc

    def exists(self, name: str, *, daemon: bool = True) -> bool:
        return self._record_path(name, daemon).exists()

    # ------------------------------------------------------------------
    # Factory / fetcher / remover
    # ------------------------------------------------------------------

    def new_image(self, repo_name: str, local: bool) -> LocalImage:
        _normalize(repo_name)
        return LocalImage(self, repo_name, local=local)

    def fetch(self, name: str, daemon: bool, pull: bool) -> LocalImage:
        if not daemon:
            record = self.read_record(name, daemon=False)
            if record is None:
                raise FetchError(
                    ErrorKind.IMAGE_NOT_FOUND,
                    f"image {symbol(name)} does not exist in the registry",
                    reference=name,
                )
            return LocalImage(self, name, local=False, record=record)

        if pull:
            remote = self.read_record(name, daemon=False)
            if remote is not None:
                logger.debug("Pulling %s into the local store", name)
                self.write_record(remote, daemon=True)
            else:
                logger.debug("%s not found in registry, using local copy", name)

        record = self.read_record(name, daemon=True)
        if record is None:
            raise FetchError(
                ErrorKind.IMAGE_NOT_FOUND,
                f"image {symbol(name)} does not exist on the daemon",
                reference=name,
            )
        return LocalImage(self, name, local=True, record=record)

    def remove(self, name: str) -> None:
        path = self._record_path(name, daemon=True)
        if not path.exists():
            raise FetchError(
                ErrorKind.IMAGE_NOT_FOUND,
                f"cannot remove {symbol(name)}: no such local image",
                reference=name,
            )
        path.unlink()
        logger.debug("Removed local image %s", name)

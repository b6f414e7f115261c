"""Buildpack blobs, deterministic layer tars, and JSON image labels.

Every buildpack becomes exactly one uncompressed layer laid out as::

    /cnb/buildpacks/<escaped id>/<version>/{buildpack.toml, bin/detect, bin/build, ...}

Entries are owned by root:root and carry a fixed mtime, so the same buildpack
always produces the same bytes and therefore the same diff ID.
"""

from __future__ import annotations

import io
import logging
import tarfile
import tomllib
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from packsmith.core.errors import ConfigurationError, ErrorKind, PackIOError, symbol
from packsmith.core.hasher import sha256_file
from packsmith.core.image import Image
from packsmith.models.buildpack import (
    BuildpackDescriptor,
    BuildpackLayerInfo,
    BuildpackLayers,
)

logger = logging.getLogger(__name__)

BUILDPACKS_DIR = "/cnb/buildpacks"
PLATFORM_ENV_DIR = "/platform/env"
DESCRIPTOR_FILE = "buildpack.toml"

# 1980-01-01T00:00:01Z, the earliest timestamp zip-based tooling accepts.
NORMALIZED_MTIME = 315532801
DEFAULT_DIR_MODE = 0o755
DEFAULT_FILE_MODE = 0o644


# ---------------------------------------------------------------------------
# Descriptor parsing
# ---------------------------------------------------------------------------


def parse_descriptor(text: str) -> BuildpackDescriptor:
    """Parse the contents of a ``buildpack.toml``.

    Raises ``ConfigurationError(INVALID_DESCRIPTOR)`` when the file is
    malformed, lacks an ID, or declares neither stacks nor an order.
    """
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(
            ErrorKind.INVALID_DESCRIPTOR, f"parsing {DESCRIPTOR_FILE}: {exc}"
        ) from exc

    info = data.get("buildpack") or {}
    try:
        descriptor = BuildpackDescriptor.model_validate({
            "api": str(data.get("api", "")),
            "info": {"id": info.get("id", ""), "version": info.get("version", "")},
            "stacks": data.get("stacks", []),
            "order": data.get("order", []),
        })
    except ValidationError as exc:
        raise ConfigurationError(
            ErrorKind.INVALID_DESCRIPTOR, f"invalid {DESCRIPTOR_FILE}: {exc}"
        ) from exc

    if not descriptor.info.id:
        raise ConfigurationError(
            ErrorKind.INVALID_DESCRIPTOR, f"{DESCRIPTOR_FILE} is missing buildpack.id"
        )
    name = symbol(descriptor.info.full_name)
    if descriptor.stacks and descriptor.order:
        raise ConfigurationError(
            ErrorKind.INVALID_DESCRIPTOR,
            f"buildpack {name}: cannot have both stacks and an order",
        )
    if not descriptor.stacks and not descriptor.order:
        raise ConfigurationError(
            ErrorKind.INVALID_DESCRIPTOR,
            f"buildpack {name}: must have either stacks or an order defined",
        )
    return descriptor


# ---------------------------------------------------------------------------
# Buildpack
# ---------------------------------------------------------------------------


def _member_path(name: str) -> str:
    """Tar member name relative to the archive root ("" for the root itself)."""
    name = name.strip("/")
    while name.startswith("./"):
        name = name[2:]
    return "" if name == "." else name


class Buildpack:
    """A buildpack descriptor plus the tar (or gzipped tar) of its files.

    The blob's root holds ``buildpack.toml`` and the ``bin/`` entrypoints.
    """

    def __init__(self, descriptor: BuildpackDescriptor, blob: bytes) -> None:
        self.descriptor = descriptor
        self.blob = blob

    @classmethod
    def from_blob(cls, blob: bytes) -> Buildpack:
        """Read ``buildpack.toml`` out of *blob* and build a Buildpack."""
        text = None
        try:
            with tarfile.open(fileobj=io.BytesIO(blob), mode="r:*") as tar:
                for member in tar:
                    if member.isreg() and _member_path(member.name) == DESCRIPTOR_FILE:
                        handle = tar.extractfile(member)
                        text = handle.read().decode("utf-8") if handle else ""
                        break
        except (tarfile.TarError, EOFError, OSError) as exc:
            raise ConfigurationError(
                ErrorKind.INVALID_DESCRIPTOR, f"reading buildpack archive: {exc}"
            ) from exc
        if text is None:
            raise ConfigurationError(
                ErrorKind.INVALID_DESCRIPTOR,
                f"could not find {DESCRIPTOR_FILE} in buildpack archive",
            )
        return cls(parse_descriptor(text), blob)

    @contextmanager
    def open(self) -> Iterator[tarfile.TarFile]:
        with tarfile.open(fileobj=io.BytesIO(self.blob), mode="r:*") as tar:
            yield tar

    def __repr__(self) -> str:
        return f"Buildpack({self.descriptor.info.full_name!r})"


# ---------------------------------------------------------------------------
# Layer tars
# ---------------------------------------------------------------------------


def _header(name: str, *, type_: bytes, mode: int) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = type_
    info.mode = mode
    info.mtime = NORMALIZED_MTIME
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


def _add_parent_dirs(out: tarfile.TarFile, path: str) -> None:
    parts = path.strip("/").split("/")
    for depth in range(1, len(parts) + 1):
        name = "/" + "/".join(parts[:depth])
        out.addfile(_header(name, type_=tarfile.DIRTYPE, mode=DEFAULT_DIR_MODE))


def buildpack_to_layer_tar(dest_dir: Path, buildpack: Buildpack) -> Path:
    """Write *buildpack* as a layer tar under *dest_dir* and return its path."""
    descriptor = buildpack.descriptor
    base = f"{BUILDPACKS_DIR}/{descriptor.escaped_id}/{descriptor.info.version}"
    layer_path = Path(dest_dir) / f"{descriptor.escaped_id}.{descriptor.info.version}.tar"

    try:
        with tarfile.open(layer_path, "w", format=tarfile.PAX_FORMAT) as out, \
                buildpack.open() as src:
            _add_parent_dirs(out, base)
            for member in src:
                rel = _member_path(member.name)
                if not rel:
                    continue
                mode = member.mode & 0o7777
                if member.isdir():
                    header = _header(f"{base}/{rel}", type_=tarfile.DIRTYPE,
                                     mode=mode or DEFAULT_DIR_MODE)
                    out.addfile(header)
                elif member.isreg():
                    header = _header(f"{base}/{rel}", type_=tarfile.REGTYPE,
                                     mode=mode or DEFAULT_FILE_MODE)
                    header.size = member.size
                    out.addfile(header, src.extractfile(member))
                elif member.issym():
                    header = _header(f"{base}/{rel}", type_=tarfile.SYMTYPE, mode=mode)
                    header.linkname = member.linkname
                    out.addfile(header)
                elif member.islnk():
                    header = _header(f"{base}/{rel}", type_=tarfile.LNKTYPE, mode=mode)
                    header.linkname = f"{base}/{_member_path(member.linkname)}"
                    out.addfile(header)
                else:
                    logger.debug("Skipping special file %s in %s", rel, descriptor.info.full_name)
    except (tarfile.TarError, OSError) as exc:
        raise PackIOError(
            "creating layer tar",
            f"buildpack {symbol(descriptor.info.full_name)}: {exc}",
        ) from exc

    return layer_path


def env_layer_tar(dest_dir: Path, env: dict[str, str]) -> Path:
    """Write build-time environment variables as ``/platform/env/<NAME>`` files."""
    layer_path = Path(dest_dir) / "env.tar"
    try:
        with tarfile.open(layer_path, "w", format=tarfile.PAX_FORMAT) as out:
            _add_parent_dirs(out, PLATFORM_ENV_DIR)
            for key in sorted(env):
                data = env[key].encode("utf-8")
                header = _header(f"{PLATFORM_ENV_DIR}/{key}", type_=tarfile.REGTYPE,
                                 mode=DEFAULT_FILE_MODE)
                header.size = len(data)
                out.addfile(header, io.BytesIO(data))
    except (tarfile.TarError, OSError) as exc:
        raise PackIOError("creating env layer tar", str(exc)) from exc
    return layer_path


def layer_diff_id(layer_path: Path) -> str:
    """Diff ID (``sha256:<hex>``) of an uncompressed layer tar."""
    try:
        return f"sha256:{sha256_file(layer_path)}"
    except OSError as exc:
        raise PackIOError("hashing layer tar", f"{layer_path}: {exc}") from exc


def add_buildpack_to_layers(
    layers: BuildpackLayers, descriptor: BuildpackDescriptor, diff_id: str
) -> None:
    """Record *descriptor*'s layer under its ID and version."""
    versions = layers.setdefault(descriptor.info.id, {})
    if descriptor.info.version in versions:
        logger.warning(
            "Buildpack %s already present, replacing its layer",
            descriptor.info.full_name,
        )
    versions[descriptor.info.version] = BuildpackLayerInfo(
        api=descriptor.api,
        stacks=descriptor.stacks,
        order=descriptor.order,
        layer_diff_id=diff_id,
    )


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------


def set_label(image: Image, key: str, value: Any, type_: Any) -> None:
    """Serialize *value* (of type *type_*) to JSON and store it as a label."""
    payload = TypeAdapter(type_).dump_json(value, by_alias=True)
    image.set_label(key, payload.decode("utf-8"))


def get_label(image: Image, key: str, type_: Any, default: Any = None) -> Any:
    """Parse a JSON label into *type_*; *default* when the label is unset."""
    raw = image.label(key)
    if not raw:
        return default
    try:
        return TypeAdapter(type_).validate_json(raw)
    except ValidationError as exc:
        raise ConfigurationError(
            ErrorKind.INVALID_IMAGE,
            f"image {symbol(image.name)} has malformed label {symbol(key)}: {exc}",
        ) from exc

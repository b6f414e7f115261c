"""Shared test fixtures for packsmith."""

from __future__ import annotations

import gzip
import io
import json
import tarfile
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest

from packsmith.config import PacksmithConfig
from packsmith.core.builder import Builder
from packsmith.core.image_store import LocalImageStore
from packsmith.core.layers import Buildpack, set_label
from packsmith.core.lifecycle import DryRunLifecycle
from packsmith.core.orchestrator import Orchestrator
from packsmith.models.buildpack import OrderEntry
from packsmith.models.labels import (
    BUILDER_METADATA_LABEL,
    STACK_ID_LABEL,
    STACK_MIXINS_LABEL,
    BuilderMetadata,
)

BUILDER_NAME = "registry.example.com/builder:latest"
RUN_IMAGE_NAME = "registry.example.com/run:latest"


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def image_store(tmp_dir: Path) -> LocalImageStore:
    """Provide a fresh LocalImageStore in a temp directory."""
    return LocalImageStore(tmp_dir / "images")


@pytest.fixture
def config(tmp_dir: Path) -> PacksmithConfig:
    """Provide a config pointing at the temp image store, targeting Linux."""
    return PacksmithConfig(
        _env_file=None,
        image_store_path=tmp_dir / "images",
        target_os="linux",
    )


@pytest.fixture
def lifecycle() -> DryRunLifecycle:
    return DryRunLifecycle()


@pytest.fixture
def orchestrator(
    config: PacksmithConfig, image_store: LocalImageStore, lifecycle: DryRunLifecycle
) -> Orchestrator:
    """Provide an Orchestrator wired to the temp store and a dry-run lifecycle."""
    return Orchestrator(
        config=config,
        fetcher=image_store,
        image_factory=image_store,
        remover=image_store,
        lifecycle=lifecycle,
        environ={},
    )


# ---------------------------------------------------------------------------
# Buildpack factories
# ---------------------------------------------------------------------------


def descriptor_toml(
    bp_id: str,
    version: str,
    stacks: Sequence[dict[str, Any]] = (),
    order: Sequence[Sequence[dict[str, Any]]] = (),
    api: str = "0.2",
) -> str:
    """Render a buildpack.toml; JSON string and list syntax is valid TOML."""
    lines = [
        f"api = {json.dumps(api)}",
        "",
        "[buildpack]",
        f"id = {json.dumps(bp_id)}",
        f"version = {json.dumps(version)}",
    ]
    for stack in stacks:
        lines += ["", "[[stacks]]", f"id = {json.dumps(stack['id'])}"]
        if stack.get("mixins"):
            lines.append(f"mixins = {json.dumps(list(stack['mixins']))}")
    for group in order:
        lines += ["", "[[order]]"]
        for ref in group:
            lines += ["", "[[order.group]]", f"id = {json.dumps(ref['id'])}"]
            if ref.get("version"):
                lines.append(f"version = {json.dumps(ref['version'])}")
            if ref.get("optional"):
                lines.append("optional = true")
    return "\n".join(lines) + "\n"


def _add_file(tar: tarfile.TarFile, name: str, data: bytes, mode: int = 0o644) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = mode
    tar.addfile(info, io.BytesIO(data))


def buildpack_blob(
    bp_id: str = "bp.1.id",
    version: str = "bp.1.version",
    stacks: Sequence[dict[str, Any]] = ({"id": "stack.id.1", "mixins": ["Mixin-A"]},),
    order: Sequence[Sequence[dict[str, Any]]] = (),
    *,
    compress: bool = False,
) -> bytes:
    """Tar of a buildpack root: buildpack.toml plus bin/build and bin/detect."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        _add_file(tar, "buildpack.toml", descriptor_toml(bp_id, version, stacks, order).encode())
        bin_dir = tarfile.TarInfo("bin")
        bin_dir.type = tarfile.DIRTYPE
        bin_dir.mode = 0o755
        tar.addfile(bin_dir)
        _add_file(tar, "bin/build", b"build-contents")
        _add_file(tar, "bin/detect", b"detect-contents")
    data = buffer.getvalue()
    return gzip.compress(data) if compress else data


@pytest.fixture
def make_buildpack_blob() -> Callable[..., bytes]:
    """Factory fixture: raw buildpack blob bytes."""
    return buildpack_blob


@pytest.fixture
def make_buildpack() -> Callable[..., Buildpack]:
    """Factory fixture: a parsed Buildpack with sensible defaults."""

    def _factory(*args: Any, **kwargs: Any) -> Buildpack:
        return Buildpack.from_blob(buildpack_blob(*args, **kwargs))

    return _factory


@pytest.fixture
def make_buildpack_dir(tmp_dir: Path) -> Callable[..., Path]:
    """Factory fixture: a buildpack laid out as a directory on disk."""

    def _factory(
        bp_id: str = "bp.1.id",
        version: str = "bp.1.version",
        stacks: Sequence[dict[str, Any]] = ({"id": "stack.id.1", "mixins": ["Mixin-A"]},),
        order: Sequence[Sequence[dict[str, Any]]] = (),
    ) -> Path:
        root = tmp_dir / "buildpacks" / f"{bp_id}-{version}".replace("/", "_")
        (root / "bin").mkdir(parents=True)
        (root / "buildpack.toml").write_text(descriptor_toml(bp_id, version, stacks, order))
        (root / "bin" / "build").write_bytes(b"build-contents")
        (root / "bin" / "detect").write_bytes(b"detect-contents")
        return root

    return _factory


# ---------------------------------------------------------------------------
# Image factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_builder_image(image_store: LocalImageStore) -> Callable[..., str]:
    """Factory fixture: save a builder image locally and return its name."""

    def _factory(
        name: str = BUILDER_NAME,
        *,
        stack_id: str = "stack.id.1",
        mixins: Sequence[str] = ("Mixin-A",),
        run_image: str = RUN_IMAGE_NAME,
        mirrors: Sequence[str] = (),
        platform_api: str = "0.2",
        buildpacks: Sequence[Buildpack] = (),
        order: Sequence[OrderEntry] = (),
    ) -> str:
        image = image_store.new_image(name, local=True)
        image.set_label(STACK_ID_LABEL, stack_id)
        image.set_label(STACK_MIXINS_LABEL, json.dumps(list(mixins)))
        metadata = BuilderMetadata.model_validate({
            "description": "test builder",
            "stack": {"runImage": {"image": run_image, "mirrors": list(mirrors)}},
            "lifecycle": {"version": "0.7.0", "api": {"buildpack": "0.2", "platform": platform_api}},
        })
        set_label(image, BUILDER_METADATA_LABEL, metadata, BuilderMetadata)
        if buildpacks or order:
            builder = Builder.from_image(image)
            for buildpack in buildpacks:
                builder.add_buildpack(buildpack)
            builder.set_order(list(order))
            builder.save()
        else:
            image.save()
        return name

    return _factory


@pytest.fixture
def make_run_image(image_store: LocalImageStore) -> Callable[..., str]:
    """Factory fixture: save a run image locally and return its name."""

    def _factory(
        name: str = RUN_IMAGE_NAME,
        *,
        stack_id: str = "stack.id.1",
        mixins: Sequence[str] = ("Mixin-A",),
        local: bool = True,
    ) -> str:
        image = image_store.new_image(name, local=local)
        image.set_label(STACK_ID_LABEL, stack_id)
        image.set_label(STACK_MIXINS_LABEL, json.dumps(list(mixins)))
        image.save()
        return name

    return _factory


@pytest.fixture
def layer_members() -> Callable[[bytes], dict[str, tarfile.TarInfo]]:
    """Helper fixture: tar members keyed by name without surrounding slashes."""

    def _members(data: bytes) -> dict[str, tarfile.TarInfo]:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
            return {member.name.strip("/"): member for member in tar.getmembers()}

    return _members


@pytest.fixture
def layer_file() -> Callable[[bytes, str], bytes]:
    """Helper fixture: contents of one regular file in a layer tar."""

    def _read(data: bytes, path: str) -> bytes:
        wanted = path.strip("/")
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
            for member in tar.getmembers():
                if member.name.strip("/") == wanted:
                    handle = tar.extractfile(member)
                    assert handle is not None
                    return handle.read()
        raise KeyError(path)

    return _read

"""Tests for buildpack blobs, layer tars and JSON labels."""

from __future__ import annotations

import io
import logging
import tarfile
from pathlib import Path

import pytest

from packsmith.core.errors import ConfigurationError, ErrorKind
from packsmith.core.hasher import sha256_file
from packsmith.core.image_store import LocalImageStore
from packsmith.core.layers import (
    NORMALIZED_MTIME,
    Buildpack,
    add_buildpack_to_layers,
    buildpack_to_layer_tar,
    env_layer_tar,
    get_label,
    layer_diff_id,
    parse_descriptor,
    set_label,
)
from packsmith.models.buildpack import BuildpackLayers, Stack
from packsmith.models.labels import PACKAGE_METADATA_LABEL, PackageMetadata

BP_DIR = "cnb/buildpacks/bp.1.id/bp.1.version"


class TestParseDescriptor:
    def test_valid(self):
        desc = parse_descriptor(
            'api = "0.2"\n[buildpack]\nid = "bp.1.id"\nversion = "1"\n'
            '[[stacks]]\nid = "stack.id.1"\nmixins = ["A"]\nbuild-images = ["ignored"]\n'
        )
        assert desc.api == "0.2"
        assert desc.info.full_name == "bp.1.id@1"
        assert desc.stacks == [Stack(id="stack.id.1", mixins=["A"])]

    def test_meta(self):
        desc = parse_descriptor(
            '[buildpack]\nid = "meta"\nversion = "1"\n'
            '[[order]]\n[[order.group]]\nid = "bp.1.id"\noptional = true\n'
        )
        assert desc.is_meta
        assert desc.order[0].group[0].optional is True

    @pytest.mark.parametrize(
        ("text", "message"),
        [
            ('[buildpack]\nversion = "1"\n[[stacks]]\nid = "s"\n', "missing buildpack.id"),
            ('[buildpack]\nid = "a"\n', "must have either stacks or an order"),
            (
                '[buildpack]\nid = "a"\n[[stacks]]\nid = "s"\n[[order]]\n[[order.group]]\nid = "b"\n',
                "cannot have both stacks and an order",
            ),
            ("[buildpack\n", "parsing buildpack.toml"),
        ],
    )
    def test_invalid(self, text: str, message: str):
        with pytest.raises(ConfigurationError, match=message) as exc_info:
            parse_descriptor(text)
        assert exc_info.value.kind is ErrorKind.INVALID_DESCRIPTOR


class TestBuildpackFromBlob:
    def test_reads_descriptor(self, make_buildpack_blob):
        bp = Buildpack.from_blob(make_buildpack_blob())
        assert bp.descriptor.info.full_name == "bp.1.id@bp.1.version"

    def test_gzip_blob(self, make_buildpack_blob):
        bp = Buildpack.from_blob(make_buildpack_blob(compress=True))
        assert bp.descriptor.info.id == "bp.1.id"

    def test_not_an_archive(self):
        with pytest.raises(ConfigurationError, match="reading buildpack archive"):
            Buildpack.from_blob(b"definitely not a tar")

    def test_missing_descriptor(self):
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as tar:
            info = tarfile.TarInfo("bin/build")
            info.size = 1
            tar.addfile(info, io.BytesIO(b"x"))
        with pytest.raises(ConfigurationError, match="could not find buildpack.toml"):
            Buildpack.from_blob(buffer.getvalue())


class TestBuildpackLayerTar:
    def test_layout(self, tmp_dir: Path, make_buildpack, layer_members, layer_file):
        layer = buildpack_to_layer_tar(tmp_dir, make_buildpack())
        members = layer_members(layer.read_bytes())

        for directory in ["cnb", "cnb/buildpacks", "cnb/buildpacks/bp.1.id", BP_DIR]:
            assert members[directory].isdir()
            assert members[directory].mode == 0o755
        assert f"{BP_DIR}/buildpack.toml" in members
        assert members[f"{BP_DIR}/bin"].isdir()
        assert layer_file(layer.read_bytes(), f"/{BP_DIR}/bin/build") == b"build-contents"
        assert layer_file(layer.read_bytes(), f"/{BP_DIR}/bin/detect") == b"detect-contents"

    def test_ownership_mode_and_mtime(self, tmp_dir: Path, make_buildpack, layer_members):
        layer = buildpack_to_layer_tar(tmp_dir, make_buildpack())
        for member in layer_members(layer.read_bytes()).values():
            assert (member.uid, member.gid) == (0, 0)
            assert member.uname == "" and member.gname == ""
            assert member.mtime == NORMALIZED_MTIME
        build = layer_members(layer.read_bytes())[f"{BP_DIR}/bin/build"]
        assert build.mode == 0o644

    def test_escaped_id(self, tmp_dir: Path, make_buildpack, layer_members):
        layer = buildpack_to_layer_tar(tmp_dir, make_buildpack("example/node", "1.0"))
        assert "cnb/buildpacks/example_node/1.0/bin/build" in layer_members(layer.read_bytes())

    def test_deterministic_diff_id(self, tmp_dir: Path, make_buildpack):
        first, second = tmp_dir / "first", tmp_dir / "second"
        first.mkdir()
        second.mkdir()
        a = buildpack_to_layer_tar(first, make_buildpack())
        b = buildpack_to_layer_tar(second, make_buildpack(compress=True))
        assert layer_diff_id(a) == layer_diff_id(b)

    def test_diff_id_format(self, tmp_dir: Path, make_buildpack):
        layer = buildpack_to_layer_tar(tmp_dir, make_buildpack())
        assert layer_diff_id(layer) == f"sha256:{sha256_file(layer)}"


class TestEnvLayer:
    def test_env_files(self, tmp_dir: Path, layer_members, layer_file):
        layer = env_layer_tar(tmp_dir, {"FOO": "bar", "EMPTY": ""})
        data = layer.read_bytes()
        assert layer_members(data)["platform/env"].isdir()
        assert layer_file(data, "/platform/env/FOO") == b"bar"
        assert layer_file(data, "/platform/env/EMPTY") == b""


class TestBuildpackLayers:
    def test_add_records_layer(self, make_buildpack):
        layers: BuildpackLayers = {}
        desc = make_buildpack().descriptor
        add_buildpack_to_layers(layers, desc, "sha256:abc")
        info = layers["bp.1.id"]["bp.1.version"]
        assert info.layer_diff_id == "sha256:abc"
        assert info.stacks == desc.stacks
        assert info.api == "0.2"

    def test_duplicate_warns_and_replaces(self, make_buildpack, caplog):
        layers: BuildpackLayers = {}
        desc = make_buildpack().descriptor
        add_buildpack_to_layers(layers, desc, "sha256:old")
        with caplog.at_level(logging.WARNING):
            add_buildpack_to_layers(layers, desc, "sha256:new")
        assert layers["bp.1.id"]["bp.1.version"].layer_diff_id == "sha256:new"
        assert "already present" in caplog.text


class TestLabels:
    def test_round_trip(self, image_store: LocalImageStore):
        image = image_store.new_image("registry.example.com/pkg:latest", local=True)
        metadata = PackageMetadata(id="bp.1.id", version="1", stacks=[Stack(id="s1")])
        set_label(image, PACKAGE_METADATA_LABEL, metadata, PackageMetadata)
        assert '"id":"bp.1.id"' in image.label(PACKAGE_METADATA_LABEL)
        assert get_label(image, PACKAGE_METADATA_LABEL, PackageMetadata) == metadata

    def test_default_when_unset(self, image_store: LocalImageStore):
        image = image_store.new_image("registry.example.com/pkg:latest", local=True)
        assert get_label(image, PACKAGE_METADATA_LABEL, PackageMetadata) is None
        assert get_label(image, "io.buildpacks.buildpack.layers", BuildpackLayers, {}) == {}

    def test_malformed_label(self, image_store: LocalImageStore):
        image = image_store.new_image("registry.example.com/pkg:latest", local=True)
        image.set_label(PACKAGE_METADATA_LABEL, "{not json")
        with pytest.raises(ConfigurationError) as exc_info:
            get_label(image, PACKAGE_METADATA_LABEL, PackageMetadata)
        assert exc_info.value.kind is ErrorKind.INVALID_IMAGE

"""Tests for the pydantic models — immutability, wire names, package.toml."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from packsmith.core.errors import ConfigurationError, ErrorKind
from packsmith.models import (
    APIVersion,
    BuilderMetadata,
    BuildpackDescriptor,
    BuildpackInfo,
    BuildpackLayerInfo,
    BuildpackRef,
    OrderEntry,
    PackageConfig,
    Stack,
)


class TestBuildpackInfo:
    def test_full_name(self):
        assert BuildpackInfo(id="bp.1.id", version="1.0").full_name == "bp.1.id@1.0"
        assert BuildpackInfo(id="bp.1.id").full_name == "bp.1.id"

    def test_frozen(self):
        info = BuildpackInfo(id="bp.1.id", version="1.0")
        with pytest.raises(ValidationError):
            info.version = "2.0"

    def test_equality_on_id_and_version(self):
        assert BuildpackInfo(id="a", version="1") == BuildpackInfo(id="a", version="1")
        assert BuildpackInfo(id="a", version="1") != BuildpackInfo(id="a", version="2")

    def test_ref_info_drops_optional(self):
        ref = BuildpackRef(id="a", version="1", optional=True)
        assert ref.info == BuildpackInfo(id="a", version="1")


class TestBuildpackDescriptor:
    def test_meta_when_order_present(self):
        desc = BuildpackDescriptor(
            info=BuildpackInfo(id="meta"),
            order=[OrderEntry(group=[BuildpackRef(id="a")])],
        )
        assert desc.is_meta is True

    def test_not_meta_with_stacks(self):
        desc = BuildpackDescriptor(info=BuildpackInfo(id="a"), stacks=[Stack(id="s")])
        assert desc.is_meta is False

    def test_escaped_id(self):
        desc = BuildpackDescriptor(info=BuildpackInfo(id="example/node"))
        assert desc.escaped_id == "example_node"

    def test_find_stack(self):
        desc = BuildpackDescriptor(
            info=BuildpackInfo(id="a"),
            stacks=[Stack(id="s1", mixins=["A"]), Stack(id="s2")],
        )
        assert desc.find_stack("s1") == Stack(id="s1", mixins=["A"])
        assert desc.find_stack("s3") is None


class TestLabelModels:
    def test_layer_info_uses_wire_name(self):
        info = BuildpackLayerInfo(layer_diff_id="sha256:abc")
        assert info.model_dump(by_alias=True)["layerDiffID"] == "sha256:abc"
        parsed = BuildpackLayerInfo.model_validate({"layerDiffID": "sha256:def"})
        assert parsed.layer_diff_id == "sha256:def"

    def test_builder_metadata_from_json(self):
        metadata = BuilderMetadata.model_validate_json(
            '{"stack": {"runImage": {"image": "run:1", "mirrors": ["m/run:1"]}},'
            ' "lifecycle": {"version": "0.7.0", "api": {"platform": "0.3"}},'
            ' "createdBy": {"name": "packsmith"}}'
        )
        assert metadata.stack.run_image.image == "run:1"
        assert metadata.stack.run_image.mirrors == ["m/run:1"]
        assert metadata.lifecycle.api.platform == "0.3"
        assert metadata.lifecycle.api.buildpack == "0.2"
        assert metadata.created_by.name == "packsmith"

    def test_builder_metadata_defaults_platform_api(self):
        assert BuilderMetadata().lifecycle.api.platform == "0.2"


class TestAPIVersion:
    def test_parse(self):
        assert APIVersion.parse("0.2") == APIVersion(major=0, minor=2)
        assert APIVersion.parse("v1.3") == APIVersion(major=1, minor=3)
        assert APIVersion.parse("2") == APIVersion(major=2, minor=0)

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            APIVersion.parse("zero.two")

    def test_str(self):
        assert str(APIVersion.parse("1")) == "1.0"

    def test_pre_release_supports_only_itself(self):
        v02 = APIVersion.parse("0.2")
        assert v02.supports(APIVersion.parse("0.2"))
        assert not v02.supports(APIVersion.parse("0.1"))
        assert not v02.supports(APIVersion.parse("0.3"))

    def test_stable_supports_older_minor(self):
        v12 = APIVersion.parse("1.2")
        assert v12.supports(APIVersion.parse("1.0"))
        assert v12.supports(APIVersion.parse("1.2"))
        assert not v12.supports(APIVersion.parse("1.3"))
        assert not v12.supports(APIVersion.parse("2.0"))


class TestPackageConfig:
    def test_load(self, tmp_dir: Path):
        path = tmp_dir / "package.toml"
        path.write_text(
            '[default]\nid = "example/node"\nversion = "1.0.0"\n\n'
            '[[buildpacks]]\nuri = "./node"\n\n'
            '[[stacks]]\nid = "io.buildpacks.stacks.bionic"\nmixins = ["build:git"]\n'
        )
        config = PackageConfig.load(path)
        assert config.default == BuildpackInfo(id="example/node", version="1.0.0")
        assert [bp.uri for bp in config.buildpacks] == ["./node"]
        assert config.stacks == [Stack(id="io.buildpacks.stacks.bionic", mixins=["build:git"])]

    def test_missing_file(self, tmp_dir: Path):
        with pytest.raises(ConfigurationError) as exc_info:
            PackageConfig.load(tmp_dir / "absent.toml")
        assert exc_info.value.kind is ErrorKind.INVALID_DESCRIPTOR

    def test_malformed_toml(self, tmp_dir: Path):
        path = tmp_dir / "package.toml"
        path.write_text("[default\nid = ")
        with pytest.raises(ConfigurationError, match="parsing package config"):
            PackageConfig.load(path)

    def test_wrong_shape(self, tmp_dir: Path):
        path = tmp_dir / "package.toml"
        path.write_text('stacks = "not-a-list"\n')
        with pytest.raises(ConfigurationError, match="invalid package config"):
            PackageConfig.load(path)

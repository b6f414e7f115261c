"""Tests for stack image views — stack ID and the build/run mixin split."""

from __future__ import annotations

import json

import pytest

from packsmith.core.errors import CompatibilityError, ConfigurationError, ErrorKind
from packsmith.core.image_store import LocalImageStore
from packsmith.core.stack_image import BuildImage, RunImage, StackImage
from packsmith.models.labels import STACK_ID_LABEL, STACK_MIXINS_LABEL


def _image(store: LocalImageStore, stack_id="stack.id.1", mixins=None, raw_mixins=None):
    image = store.new_image("registry.example.com/stack:latest", local=True)
    if stack_id:
        image.set_label(STACK_ID_LABEL, stack_id)
    if mixins is not None:
        image.set_label(STACK_MIXINS_LABEL, json.dumps(mixins))
    if raw_mixins is not None:
        image.set_label(STACK_MIXINS_LABEL, raw_mixins)
    return image


class TestStackImage:
    def test_reads_stack_and_mixins(self, image_store: LocalImageStore):
        view = StackImage(_image(image_store, mixins=["A", "build:git", "run:tz"]))
        assert view.stack_id == "stack.id.1"
        assert view.mixins == ["A", "build:git", "run:tz"]
        assert view.common_mixins == ["A"]
        assert view.name == "registry.example.com/stack:latest"

    def test_no_mixins_label(self, image_store: LocalImageStore):
        assert StackImage(_image(image_store)).mixins == []

    def test_missing_stack_id(self, image_store: LocalImageStore):
        with pytest.raises(ConfigurationError, match="io.buildpacks.stack.id") as exc_info:
            StackImage(_image(image_store, stack_id=""))
        assert exc_info.value.kind is ErrorKind.INVALID_IMAGE

    @pytest.mark.parametrize("raw", ["[not json", '{"a": 1}', "[1, 2]"])
    def test_malformed_mixins(self, image_store: LocalImageStore, raw: str):
        with pytest.raises(ConfigurationError) as exc_info:
            StackImage(_image(image_store, raw_mixins=raw))
        assert exc_info.value.kind is ErrorKind.INVALID_IMAGE


class TestBuildAndRunImages:
    def test_build_only_mixins(self, image_store: LocalImageStore):
        view = BuildImage(_image(image_store, mixins=["A", "build:git"]))
        assert view.common_mixins == ["A"]
        assert view.build_only_mixins == ["build:git"]

    def test_build_image_rejects_run_mixins(self, image_store: LocalImageStore):
        with pytest.raises(CompatibilityError, match="run-only mixin") as exc_info:
            BuildImage(_image(image_store, mixins=["A", "run:tz"]))
        assert exc_info.value.kind is ErrorKind.INVALID_MIXINS

    def test_run_only_mixins(self, image_store: LocalImageStore):
        view = RunImage(_image(image_store, mixins=["A", "run:tz"]))
        assert view.common_mixins == ["A"]
        assert view.run_only_mixins == ["run:tz"]

    def test_run_image_rejects_build_mixins(self, image_store: LocalImageStore):
        with pytest.raises(CompatibilityError, match="build-only mixin") as exc_info:
            RunImage(_image(image_store, mixins=["build:git"]))
        assert exc_info.value.kind is ErrorKind.INVALID_MIXINS

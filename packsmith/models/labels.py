"""Image label names and the metadata models persisted under them."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from packsmith.models.buildpack import BuildpackInfo, Stack

PACKAGE_METADATA_LABEL = "io.buildpacks.buildpackage.metadata"
BUILDPACK_LAYERS_LABEL = "io.buildpacks.buildpack.layers"
BUILDPACK_ORDER_LABEL = "io.buildpacks.buildpack.order"
BUILDER_METADATA_LABEL = "io.buildpacks.builder.metadata"
STACK_ID_LABEL = "io.buildpacks.stack.id"
STACK_MIXINS_LABEL = "io.buildpacks.stack.mixins"

# Mixin name prefixes restricting a mixin to one side of the build/run split.
BUILD_MIXIN_PREFIX = "build:"
RUN_MIXIN_PREFIX = "run:"


class PackageMetadata(BaseModel):
    """Label written on a buildpack package image."""

    model_config = ConfigDict(frozen=True)

    id: str
    version: str = ""
    stacks: list[Stack] = Field(default_factory=list)

    @property
    def info(self) -> BuildpackInfo:
        return BuildpackInfo(id=self.id, version=self.version)


class RunImageMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    image: str = ""
    mirrors: list[str] = Field(default_factory=list)


class StackMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    run_image: RunImageMetadata = Field(default_factory=RunImageMetadata, alias="runImage")


class LifecycleAPIs(BaseModel):
    model_config = ConfigDict(frozen=True)

    buildpack: str = "0.2"
    platform: str = "0.2"


class LifecycleMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str = ""
    api: LifecycleAPIs = Field(default_factory=LifecycleAPIs)


class CreatorMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    version: str = ""


class BuilderMetadata(BaseModel):
    """Label written on a builder image describing its stack and lifecycle."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    description: str = ""
    stack: StackMetadata = Field(default_factory=StackMetadata)
    buildpacks: list[BuildpackInfo] = Field(default_factory=list)
    lifecycle: LifecycleMetadata = Field(default_factory=LifecycleMetadata)
    created_by: CreatorMetadata = Field(default_factory=CreatorMetadata, alias="createdBy")

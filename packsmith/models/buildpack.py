"""Buildpack identity and descriptor models (immutable)."""

from __future__ import annotations

from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    model_serializer,
)


class BuildpackInfo(BaseModel):
    """Identity of a buildpack.

    An empty ``version`` means "unspecified" and is resolved later against
    whatever versions a builder actually carries.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    version: str = ""

    @property
    def full_name(self) -> str:
        """``id@version``, or just ``id`` when the version is unspecified."""
        if self.version:
            return f"{self.id}@{self.version}"
        return self.id


class Stack(BaseModel):
    """A stack ID plus the mixins declared against it."""

    model_config = ConfigDict(frozen=True)

    id: str
    mixins: list[str] = Field(default_factory=list)

    @model_serializer(mode="wrap")
    def _omit_empty_mixins(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        if not self.mixins:
            data.pop("mixins", None)
        return data


class BuildpackRef(BuildpackInfo):
    """A reference to a buildpack inside an order group."""

    optional: bool = False

    @model_serializer(mode="wrap")
    def _omit_required_flag(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        if not self.optional:
            data.pop("optional", None)
        return data

    @property
    def info(self) -> BuildpackInfo:
        return BuildpackInfo(id=self.id, version=self.version)


class OrderEntry(BaseModel):
    """One detection group: buildpacks that are tried together."""

    model_config = ConfigDict(frozen=True)

    group: list[BuildpackRef] = Field(default_factory=list)


Order = list[OrderEntry]


class BuildpackDescriptor(BaseModel):
    """Contents of a ``buildpack.toml``.

    A descriptor with a non-empty ``order`` is a meta-buildpack: it has no
    build logic of its own and may declare zero stacks.
    """

    model_config = ConfigDict(frozen=True)

    api: str = ""
    info: BuildpackInfo
    stacks: list[Stack] = Field(default_factory=list)
    order: list[OrderEntry] = Field(default_factory=list)

    @property
    def is_meta(self) -> bool:
        return len(self.order) > 0

    @property
    def escaped_id(self) -> str:
        """Buildpack ID made safe for use as a single path segment."""
        return self.info.id.replace("/", "_")

    def find_stack(self, stack_id: str) -> Stack | None:
        """Return the declared stack entry for *stack_id*, if any."""
        for stack in self.stacks:
            if stack.id == stack_id:
                return stack
        return None


class BuildpackLayerInfo(BaseModel):
    """Per-buildpack entry of the ``io.buildpacks.buildpack.layers`` label."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api: str = ""
    stacks: list[Stack] = Field(default_factory=list)
    order: list[OrderEntry] = Field(default_factory=list)
    layer_diff_id: str = Field(default="", alias="layerDiffID")

    @model_serializer(mode="wrap")
    def _omit_empty_order(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        if not self.order:
            data.pop("order", None)
        return data


# buildpack ID -> version -> layer info
BuildpackLayers = dict[str, dict[str, BuildpackLayerInfo]]

"""Builder images: a read-only capability view and a mutable composer."""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Mapping
from pathlib import Path

from packsmith.core.errors import ConfigurationError, ErrorKind, PackIOError, symbol
from packsmith.core.image import Image
from packsmith.core.layers import (
    Buildpack,
    add_buildpack_to_layers,
    buildpack_to_layer_tar,
    env_layer_tar,
    get_label,
    layer_diff_id,
    set_label,
)
from packsmith.core.stack_image import BuildImage
from packsmith.models.buildpack import (
    BuildpackInfo,
    BuildpackLayers,
    BuildpackRef,
    Order,
    OrderEntry,
)
from packsmith.models.labels import (
    BUILDER_METADATA_LABEL,
    BUILDPACK_LAYERS_LABEL,
    BUILDPACK_ORDER_LABEL,
    BuilderMetadata,
)
from packsmith.models.versioning import APIVersion

logger = logging.getLogger(__name__)


class BuilderImage(BuildImage):
    """Stack, metadata, buildpack layers and order of a builder image."""

    def __init__(self, image: Image) -> None:
        super().__init__(image)
        metadata = get_label(image, BUILDER_METADATA_LABEL, BuilderMetadata)
        if metadata is None:
            raise ConfigurationError(
                ErrorKind.INVALID_IMAGE,
                f"builder {symbol(image.name)} missing label "
                f"{symbol(BUILDER_METADATA_LABEL)}",
            )
        self._metadata: BuilderMetadata = metadata
        self._layers: BuildpackLayers = get_label(
            image, BUILDPACK_LAYERS_LABEL, BuildpackLayers, {}
        )
        self._order: Order = get_label(image, BUILDPACK_ORDER_LABEL, Order, [])

    @property
    def metadata(self) -> BuilderMetadata:
        return self._metadata

    @property
    def buildpack_layers(self) -> BuildpackLayers:
        return {bp_id: dict(versions) for bp_id, versions in self._layers.items()}

    @property
    def order(self) -> Order:
        return list(self._order)

    @property
    def buildpacks(self) -> list[BuildpackInfo]:
        return list(self._metadata.buildpacks)

    @property
    def platform_api_version(self) -> APIVersion:
        raw = self._metadata.lifecycle.api.platform
        try:
            return APIVersion.parse(raw)
        except ValueError as exc:
            raise ConfigurationError(
                ErrorKind.INVALID_IMAGE,
                f"builder {symbol(self.name)} declares invalid platform API {symbol(raw)}",
            ) from exc


def _resolve_ref(ref: BuildpackRef, available: Mapping[str, set[str]]) -> BuildpackRef:
    versions = available.get(ref.id, set())
    if not versions:
        raise ConfigurationError(
            ErrorKind.INVALID_REFERENCE,
            f"no versions of buildpack {symbol(ref.id)} were found on the builder",
        )
    if not ref.version:
        if len(versions) > 1:
            raise ConfigurationError(
                ErrorKind.INVALID_REFERENCE,
                f"multiple versions of {symbol(ref.id)} found on the builder; "
                "an explicit version is required",
            )
        (version,) = versions
        return ref.model_copy(update={"version": version})
    if ref.version not in versions:
        raise ConfigurationError(
            ErrorKind.INVALID_REFERENCE,
            f"buildpack {symbol(ref.full_name)} was not found on the builder",
        )
    return ref


class Builder:
    """Mutable builder composition on top of an existing image handle.

    Changes are staged on the instance and written by ``save()``; the
    handle itself is untouched until then.
    """

    def __init__(self, image: Image, view: BuilderImage) -> None:
        self._image = image
        self._metadata = view.metadata
        self._layers = view.buildpack_layers
        self._order = view.order
        self._env: dict[str, str] = {}
        self._additional: list[Buildpack] = []

    @classmethod
    def from_image(cls, image: Image) -> Builder:
        return cls(image, BuilderImage(image))

    @property
    def name(self) -> str:
        return self._image.name

    def set_env(self, env: Mapping[str, str]) -> None:
        self._env = dict(env)

    def add_buildpack(self, buildpack: Buildpack) -> None:
        self._additional.append(buildpack)

    def set_order(self, order: Order) -> None:
        self._order = list(order)

    def _available_versions(self) -> dict[str, set[str]]:
        available = {bp_id: set(versions) for bp_id, versions in self._layers.items()}
        for buildpack in self._additional:
            info = buildpack.descriptor.info
            available.setdefault(info.id, set()).add(info.version)
        return available

    def _resolve_order(self) -> Order:
        available = self._available_versions()
        return [
            OrderEntry(group=[_resolve_ref(ref, available) for ref in entry.group])
            for entry in self._order
        ]

    def save(self) -> BuilderImage:
        """Write env and buildpack layers plus labels, then persist once."""
        order = self._resolve_order()
        layers = {bp_id: dict(versions) for bp_id, versions in self._layers.items()}

        try:
            with tempfile.TemporaryDirectory(prefix="packsmith-builder-") as tmp:
                tmp_dir = Path(tmp)
                if self._env:
                    self._image.add_layer(env_layer_tar(tmp_dir, self._env))
                for buildpack in self._additional:
                    logger.debug(
                        "Adding buildpack %s to %s",
                        buildpack.descriptor.info.full_name, self.name,
                    )
                    layer_path = buildpack_to_layer_tar(tmp_dir, buildpack)
                    self._image.add_layer(layer_path)
                    add_buildpack_to_layers(
                        layers, buildpack.descriptor, layer_diff_id(layer_path)
                    )

                metadata = self._metadata.model_copy(update={
                    "buildpacks": [
                        BuildpackInfo(id=bp_id, version=version)
                        for bp_id in sorted(layers)
                        for version in sorted(layers[bp_id])
                    ],
                })
                set_label(self._image, BUILDPACK_LAYERS_LABEL, layers, BuildpackLayers)
                set_label(self._image, BUILDPACK_ORDER_LABEL, order, Order)
                set_label(self._image, BUILDER_METADATA_LABEL, metadata, BuilderMetadata)
                self._image.save()
        except OSError as exc:
            raise PackIOError("saving builder", f"{symbol(self.name)}: {exc}") from exc

        return BuilderImage(self._image)

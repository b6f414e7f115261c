"""Buildpack package builder.

Collects a default buildpack, its dependencies and the stacks the package
claims to support, validates the whole set, and only then writes a package
image: one layer per buildpack plus the package metadata and buildpack
layers labels.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from packsmith.core.compat import ensure_stack_support, merge_compatible_stacks
from packsmith.core.errors import (
    CompatibilityError,
    ConfigurationError,
    ErrorKind,
    PackIOError,
    symbol,
)
from packsmith.core.image import Image, ImageFactory
from packsmith.core.layers import (
    Buildpack,
    add_buildpack_to_layers,
    buildpack_to_layer_tar,
    layer_diff_id,
    set_label,
)
from packsmith.models.buildpack import BuildpackInfo, BuildpackLayers, Stack
from packsmith.models.labels import (
    BUILDPACK_LAYERS_LABEL,
    PACKAGE_METADATA_LABEL,
    PackageMetadata,
)

logger = logging.getLogger(__name__)


class PackageBuilder:
    """Single-use builder for one buildpack package image.

    The setters only record state; every check runs in ``save()`` before
    the first image handle is created.

    Parameters
    ----------
    image_factory:
        Creates the (empty) package image handle.
    """

    def __init__(self, image_factory: ImageFactory) -> None:
        self._image_factory = image_factory
        self._default: BuildpackInfo | None = None
        self._buildpacks: list[Buildpack] = []
        self._stacks: list[Stack] = []

    def set_default_buildpack(self, info: BuildpackInfo) -> None:
        self._default = info

    def add_buildpack(self, buildpack: Buildpack) -> None:
        self._buildpacks.append(buildpack)

    def add_stack(self, stack: Stack) -> None:
        self._stacks.append(stack)

    @property
    def stacks(self) -> list[Stack]:
        return list(self._stacks)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _find_default(self) -> Buildpack:
        if self._default is None:
            raise ConfigurationError(
                ErrorKind.NO_DEFAULT_BUILDPACK, "a default buildpack must be set"
            )
        for buildpack in self._buildpacks:
            if buildpack.descriptor.info == self._default:
                return buildpack
        raise ConfigurationError(
            ErrorKind.DEFAULT_NOT_INCLUDED,
            f"selected default {symbol(self._default.full_name)} is not present",
        )

    def validate(self) -> Buildpack:
        """Run every configuration and compatibility check.

        Returns the default buildpack. Checks run in a fixed order and the
        first failure is raised.
        """
        default = self._find_default()

        seen: set[str] = set()
        for stack in self._stacks:
            if stack.id in seen:
                raise ConfigurationError(
                    ErrorKind.DUPLICATE_STACK,
                    f"stack {symbol(stack.id)} was specified more than once",
                )
            seen.add(stack.id)

        if not self._stacks and not default.descriptor.is_meta:
            raise ConfigurationError(
                ErrorKind.NO_STACKS_DECLARED, "must specify at least one supported stack"
            )

        for stack in self._stacks:
            for buildpack in self._buildpacks:
                descriptor = buildpack.descriptor
                if descriptor.is_meta:
                    continue
                if descriptor.find_stack(stack.id) is None:
                    raise CompatibilityError(
                        ErrorKind.UNSUPPORTED_STACK,
                        f"buildpack {symbol(descriptor.info.full_name)} does not "
                        f"support stack {symbol(stack.id)}",
                    )
                ensure_stack_support(descriptor, stack.id, stack.mixins, True)

        return default

    def infer_stacks(self) -> list[Stack]:
        """Stacks every non-meta buildpack in the package supports.

        Starts from the default buildpack's stacks and narrows them with each
        dependency in the order they were added. The mixins of each result
        are the union of what the buildpacks require for that stack.
        """
        default = self._find_default()
        stacks: list[Stack] | None = None
        if not default.descriptor.is_meta:
            stacks = list(default.descriptor.stacks)

        for buildpack in self._buildpacks:
            descriptor = buildpack.descriptor
            if buildpack is default or descriptor.is_meta:
                continue
            if stacks is None:
                stacks = list(descriptor.stacks)
                continue
            merged = merge_compatible_stacks(stacks, descriptor.stacks)
            if not merged:
                raise CompatibilityError(
                    ErrorKind.NO_COMMON_STACK,
                    f"buildpack {symbol(descriptor.info.full_name)} does not support "
                    f"any stacks from {symbol(default.descriptor.info.full_name)}",
                )
            stacks = merged

        return stacks or []

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save(self, repo_name: str, publish: bool) -> Image:
        """Validate, then write and persist the package image.

        Nothing is created when validation fails, and the image is saved
        exactly once at the end.
        """
        default = self.validate()

        image = self._image_factory.new_image(repo_name, local=not publish)
        set_label(
            image,
            PACKAGE_METADATA_LABEL,
            PackageMetadata(
                id=default.descriptor.info.id,
                version=default.descriptor.info.version,
                stacks=self._stacks,
            ),
            PackageMetadata,
        )

        ordered = [bp for bp in self._buildpacks if bp is not default] + [default]
        layers: BuildpackLayers = {}
        try:
            with tempfile.TemporaryDirectory(prefix="packsmith-package-") as tmp:
                for buildpack in ordered:
                    logger.debug("Adding layer for %s", buildpack.descriptor.info.full_name)
                    layer_path = buildpack_to_layer_tar(Path(tmp), buildpack)
                    image.add_layer(layer_path)
                    add_buildpack_to_layers(
                        layers, buildpack.descriptor, layer_diff_id(layer_path)
                    )
                set_label(image, BUILDPACK_LAYERS_LABEL, layers, BuildpackLayers)
                image.save()
        except OSError as exc:
            raise PackIOError("creating package", f"{symbol(repo_name)}: {exc}") from exc

        logger.info(
            "Created package %s with %d buildpack(s)", repo_name, len(ordered)
        )
        return image

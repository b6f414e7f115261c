"""Stack views over images: stack ID and the build/run mixin split.

Mixins are read from the ``io.buildpacks.stack.mixins`` label. Unprefixed
mixins are common to build and run images; ``build:`` and ``run:`` prefixed
mixins only exist on one side. Prefixed names are kept as-is so they compare
equal to what buildpacks declare.
"""

from __future__ import annotations

import json

from packsmith.core.errors import (
    CompatibilityError,
    ConfigurationError,
    ErrorKind,
    symbol,
)
from packsmith.core.image import Image
from packsmith.models.labels import (
    BUILD_MIXIN_PREFIX,
    RUN_MIXIN_PREFIX,
    STACK_ID_LABEL,
    STACK_MIXINS_LABEL,
)


class StackImage:
    """Any image carrying stack labels."""

    def __init__(self, image: Image) -> None:
        self.image = image
        self._stack_id = image.label(STACK_ID_LABEL)
        if not self._stack_id:
            raise ConfigurationError(
                ErrorKind.INVALID_IMAGE,
                f"image {symbol(image.name)} missing label {symbol(STACK_ID_LABEL)}",
            )
        self._mixins = self._read_mixins(image)

    @staticmethod
    def _read_mixins(image: Image) -> list[str]:
        raw = image.label(STACK_MIXINS_LABEL)
        if not raw:
            return []
        try:
            mixins = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(
                ErrorKind.INVALID_IMAGE,
                f"image {symbol(image.name)} has malformed label "
                f"{symbol(STACK_MIXINS_LABEL)}: {exc}",
            ) from exc
        if not isinstance(mixins, list) or not all(isinstance(m, str) for m in mixins):
            raise ConfigurationError(
                ErrorKind.INVALID_IMAGE,
                f"image {symbol(image.name)} label {symbol(STACK_MIXINS_LABEL)} "
                "must be a list of strings",
            )
        return mixins

    @property
    def name(self) -> str:
        return self.image.name

    @property
    def stack_id(self) -> str:
        return self._stack_id

    @property
    def mixins(self) -> list[str]:
        return list(self._mixins)

    @property
    def common_mixins(self) -> list[str]:
        return [
            m for m in self._mixins
            if not m.startswith((BUILD_MIXIN_PREFIX, RUN_MIXIN_PREFIX))
        ]

    def _prefixed(self, prefix: str) -> list[str]:
        return [m for m in self._mixins if m.startswith(prefix)]


class BuildImage(StackImage):
    """A stack image used at build time; may not declare run-only mixins."""

    def __init__(self, image: Image) -> None:
        super().__init__(image)
        invalid = self._prefixed(RUN_MIXIN_PREFIX)
        if invalid:
            raise CompatibilityError(
                ErrorKind.INVALID_MIXINS,
                f"build image {symbol(image.name)} contains run-only mixin(s): "
                f"{', '.join(sorted(invalid))}",
            )

    @property
    def build_only_mixins(self) -> list[str]:
        return self._prefixed(BUILD_MIXIN_PREFIX)


class RunImage(StackImage):
    """A stack image used at run time; may not declare build-only mixins."""

    def __init__(self, image: Image) -> None:
        super().__init__(image)
        invalid = self._prefixed(BUILD_MIXIN_PREFIX)
        if invalid:
            raise CompatibilityError(
                ErrorKind.INVALID_MIXINS,
                f"run image {symbol(image.name)} contains build-only mixin(s): "
                f"{', '.join(sorted(invalid))}",
            )

    @property
    def run_only_mixins(self) -> list[str]:
        return self._prefixed(RUN_MIXIN_PREFIX)

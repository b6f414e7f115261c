"""Ephemeral builder composition.

An ephemeral builder is a scratch copy of a builder image with extra
buildpacks, build-time environment and an optional custom order applied.
It lives under its own local-only name and is removed after the build.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Callable, Mapping, Sequence

from packsmith.core.builder import Builder, BuilderImage
from packsmith.core.hasher import content_address
from packsmith.core.image import Image
from packsmith.core.layers import Buildpack
from packsmith.models.buildpack import OrderEntry

logger = logging.getLogger(__name__)

DEFAULT_SCRATCH_REPOSITORY = "pack.local/builder"
_SUFFIX_LENGTH = 10

NameFactory = Callable[[], str]


def _random_suffix() -> str:
    return "".join(secrets.choice(string.ascii_lowercase) for _ in range(_SUFFIX_LENGTH))


def random_scratch_name(repository: str = DEFAULT_SCRATCH_REPOSITORY) -> str:
    """``<repository>/<10 random lowercase letters>:latest``."""
    return f"{repository}/{_random_suffix()}:latest"


def content_scratch_name(
    base_image: Image,
    buildpacks: Sequence[Buildpack],
    group: OrderEntry,
    repository: str = DEFAULT_SCRATCH_REPOSITORY,
) -> str:
    """``<repository>/<content hash>-<random letters>:latest``.

    The hash covers the base image, added buildpacks and order, so scratch
    builders from the same inputs group together. The random part keeps
    concurrent builds from sharing (and removing) one scratch reference.
    """
    digest = content_address({
        "base": base_image.identifier(),
        "buildpacks": [bp.descriptor.info.model_dump() for bp in buildpacks],
        "group": [ref.model_dump() for ref in group.group],
    })
    prefix = digest.split(":", 1)[1][:_SUFFIX_LENGTH * 2]
    return f"{repository}/{prefix}-{_random_suffix()}:latest"


def create_ephemeral_builder(
    base_image: Image,
    env: Mapping[str, str],
    group: OrderEntry,
    buildpacks: Sequence[Buildpack],
    *,
    scratch_repository: str = DEFAULT_SCRATCH_REPOSITORY,
    name_factory: NameFactory | None = None,
) -> BuilderImage:
    """Compose and locally persist a scratch builder.

    *base_image* is the handle fetched for the original builder. It is
    renamed before anything is written, so saving never touches the
    original reference. An empty *group* keeps the builder's own order.

    The caller owns cleanup of the returned image.
    """
    if name_factory is not None:
        name = name_factory()
    else:
        name = random_scratch_name(scratch_repository)

    original = base_image.name
    base_image.rename(name)
    logger.debug("Composing ephemeral builder %s from %s", name, original)

    builder = Builder.from_image(base_image)
    builder.set_env(env)
    for buildpack in buildpacks:
        builder.add_buildpack(buildpack)
    if group.group:
        builder.set_order([group])

    return builder.save()

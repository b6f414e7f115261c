"""Stack and mixin compatibility engine — pure functions, no I/O.

Decides whether a set of buildpacks can run on a builder/run image pair.
Builder and run images are consumed through the ``BuilderView`` and
``RunView`` capability Protocols, so anything exposing a stack ID and mixin
sets can be validated.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from packsmith.core.errors import CompatibilityError, ErrorKind, symbol
from packsmith.models.buildpack import (
    BuildpackDescriptor,
    BuildpackInfo,
    BuildpackLayers,
    Stack,
)


class BuilderView(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def stack_id(self) -> str: ...

    @property
    def common_mixins(self) -> list[str]: ...

    @property
    def build_only_mixins(self) -> list[str]: ...

    @property
    def buildpack_layers(self) -> BuildpackLayers: ...


class RunView(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def common_mixins(self) -> list[str]: ...

    @property
    def run_only_mixins(self) -> list[str]: ...


def merge_compatible_stacks(a: Sequence[Stack], b: Sequence[Stack]) -> list[Stack]:
    """Stacks whose ID appears in both *a* and *b*, in *b*'s order.

    Each result carries the sorted union of the mixins declared for that ID
    on either side. An empty result means the two sides share no stack.
    """
    mixins_by_id = {stack.id: stack.mixins for stack in a}
    merged: list[Stack] = []
    for stack in b:
        if stack.id in mixins_by_id:
            mixins = sorted(set(mixins_by_id[stack.id]) | set(stack.mixins))
            merged.append(Stack(id=stack.id, mixins=mixins))
    return merged


def find_missing(actual: Iterable[str], required: Iterable[str]) -> list[str]:
    """Sorted list of entries in *required* that are absent from *actual*."""
    return sorted(set(required) - set(actual))


def assemble_available_mixins(builder: BuilderView, run: RunView) -> set[str]:
    """Mixins a buildpack may require on this builder/run pair.

    Common mixins count only when both images list them as common; build-only
    and run-only mixins are added as-is. A plain union of both sides would
    accept a mixin that exists on one image only:

        run common:   [A, B]
        build common: [A]
        available:    [A]      (not [A, B])
    """
    in_both = set(builder.common_mixins) & set(run.common_mixins)
    return in_both | set(builder.build_only_mixins) | set(run.run_only_mixins)


def ensure_stack_support(
    descriptor: BuildpackDescriptor,
    stack_id: str,
    available_mixins: Iterable[str],
    require_mixins: bool,
) -> None:
    """Fail unless *descriptor* can run on *stack_id* with the given mixins.

    Meta-buildpacks are skipped: the buildpacks they reference are checked
    on their own.
    """
    if descriptor.is_meta:
        return

    stack = descriptor.find_stack(stack_id)
    if stack is None:
        raise CompatibilityError(
            ErrorKind.STACK_MISMATCH,
            f"buildpack {symbol(descriptor.info.full_name)} does not support "
            f"stack {symbol(stack_id)}",
        )

    if not require_mixins:
        return

    missing = find_missing(available_mixins, stack.mixins)
    if missing:
        raise CompatibilityError(
            ErrorKind.MISSING_MIXINS,
            f"buildpack {symbol(descriptor.info.full_name)} requires missing "
            f"mixin(s): {', '.join(missing)}",
            missing=missing,
        )


def validate_common_mixins(builder: BuilderView, run: RunView) -> None:
    """The run image must provide every common mixin the builder declares."""
    missing = find_missing(run.common_mixins, builder.common_mixins)
    if missing:
        raise CompatibilityError(
            ErrorKind.MISSING_MIXINS,
            f"{symbol(run.name)} missing required mixin(s): {', '.join(missing)}",
            missing=missing,
        )


def builder_descriptors(builder: BuilderView) -> list[BuildpackDescriptor]:
    """Descriptors for every buildpack already embedded in *builder*."""
    layers = builder.buildpack_layers
    descriptors: list[BuildpackDescriptor] = []
    for bp_id in sorted(layers):
        for version in sorted(layers[bp_id]):
            layer = layers[bp_id][version]
            descriptors.append(
                BuildpackDescriptor(
                    api=layer.api,
                    info=BuildpackInfo(id=bp_id, version=version),
                    stacks=layer.stacks,
                    order=layer.order,
                )
            )
    return descriptors


def validate_mixins(
    builder: BuilderView,
    run: RunView,
    additional: Sequence[BuildpackDescriptor] = (),
) -> None:
    """Check mixin parity and every buildpack against the builder's stack.

    Covers both the buildpacks embedded in the builder and *additional*
    ones about to be added. Stops at the first violation.
    """
    validate_common_mixins(builder, run)

    available = assemble_available_mixins(builder, run)
    for descriptor in [*builder_descriptors(builder), *additional]:
        ensure_stack_support(descriptor, builder.stack_id, available, True)

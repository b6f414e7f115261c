"""packsmith data models — all Pydantic v2, all frozen (immutable)."""

from packsmith.models.buildpack import (
    BuildpackDescriptor,
    BuildpackInfo,
    BuildpackLayerInfo,
    BuildpackLayers,
    BuildpackRef,
    Order,
    OrderEntry,
    Stack,
)
from packsmith.models.config import (
    BuildOptions,
    BuildResult,
    BuildState,
    BuildpackLocation,
    ContainerConfig,
    LifecycleOptions,
    PackageConfig,
    ProxyConfig,
)
from packsmith.models.images import ImageRecord
from packsmith.models.labels import (
    BuilderMetadata,
    CreatorMetadata,
    LifecycleAPIs,
    LifecycleMetadata,
    PackageMetadata,
    RunImageMetadata,
    StackMetadata,
)
from packsmith.models.versioning import APIVersion

__all__ = [
    # buildpacks
    "BuildpackInfo",
    "BuildpackRef",
    "BuildpackDescriptor",
    "BuildpackLayerInfo",
    "BuildpackLayers",
    "Order",
    "OrderEntry",
    "Stack",
    # labels
    "PackageMetadata",
    "BuilderMetadata",
    "StackMetadata",
    "RunImageMetadata",
    "LifecycleMetadata",
    "LifecycleAPIs",
    "CreatorMetadata",
    # images
    "ImageRecord",
    # builds and packages
    "BuildOptions",
    "BuildResult",
    "BuildState",
    "ContainerConfig",
    "LifecycleOptions",
    "ProxyConfig",
    "PackageConfig",
    "BuildpackLocation",
    # versioning
    "APIVersion",
]

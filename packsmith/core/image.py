"""Image store contract consumed by the packaging and build core.

Defines the ``Image``, ``ImageFactory``, ``ImageFetcher`` and ``ImageRemover``
Protocols. Any backend (a docker daemon client, a registry client, or the
bundled ``LocalImageStore``) satisfies them without inheriting from anything.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class Image(Protocol):
    """A mutable handle on an OCI image.

    Layers and labels accumulate on the handle and are persisted only by
    ``save()``. A handle that is never saved leaves no trace in the store.
    """

    @property
    def name(self) -> str:
        ...

    def rename(self, name: str) -> None:
        """Point the handle at a new reference; the old one is untouched."""
        ...

    def label(self, key: str) -> str:
        """Return the label value, or ``""`` when it is not set."""
        ...

    def set_label(self, key: str, value: str) -> None:
        ...

    def add_layer(self, path: Path) -> None:
        """Append an uncompressed layer tar read from *path*."""
        ...

    def identifier(self) -> str:
        """A content-derived identifier for the image's current state."""
        ...

    def found(self) -> bool:
        """Whether the handle was loaded from an existing image."""
        ...

    def save(self) -> None:
        ...


@runtime_checkable
class ImageFactory(Protocol):
    def new_image(self, repo_name: str, local: bool) -> Image:
        """Create an empty image handle; ``local=False`` targets the registry."""
        ...


@runtime_checkable
class ImageFetcher(Protocol):
    def fetch(self, name: str, daemon: bool, pull: bool) -> Image:
        """Load an existing image.

        ``daemon`` selects the local image namespace; ``pull`` allows
        refreshing it from the registry first.
        """
        ...


@runtime_checkable
class ImageRemover(Protocol):
    def remove(self, name: str) -> None:
        """Delete a local image by name."""
        ...

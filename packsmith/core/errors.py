"""Error taxonomy for packaging and build operations.

Every failure raised by packsmith is a ``PacksmithError`` subclass carrying an
``ErrorKind`` tag, so callers can branch on ``exc.kind`` (or the subclass)
instead of inspecting messages.  Nothing here is retried or downgraded: each
error aborts the current package or build operation.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum


class ErrorKind(str, Enum):
    # configuration
    NO_DEFAULT_BUILDPACK = "no_default_buildpack"
    DEFAULT_NOT_INCLUDED = "default_not_included"
    DUPLICATE_STACK = "duplicate_stack"
    NO_STACKS_DECLARED = "no_stacks_declared"
    INVALID_REFERENCE = "invalid_reference"
    INVALID_APP_PATH = "invalid_app_path"
    INVALID_IMAGE = "invalid_image"
    INVALID_DESCRIPTOR = "invalid_descriptor"
    NO_RUN_IMAGE = "no_run_image"
    UNSUPPORTED_PLATFORM = "unsupported_platform"
    # compatibility
    STACK_MISMATCH = "stack_mismatch"
    UNSUPPORTED_STACK = "unsupported_stack"
    MISSING_MIXINS = "missing_mixins"
    NO_COMMON_STACK = "no_common_stack"
    INVALID_MIXINS = "invalid_mixins"
    # fetch
    IMAGE_NOT_FOUND = "image_not_found"
    DOWNLOAD_FAILED = "download_failed"
    # platform
    INCOMPATIBLE_PLATFORM_API = "incompatible_platform_api"
    # io
    IO = "io"


class PacksmithError(RuntimeError):
    """Base class for all packsmith failures."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class ConfigurationError(PacksmithError):
    """Invalid input or configuration (missing default, duplicate stack, ...)."""


class CompatibilityError(PacksmithError):
    """Stack or mixin incompatibility.

    ``missing`` lists every missing item, sorted.
    """

    def __init__(
        self, kind: ErrorKind, message: str, *, missing: Iterable[str] = ()
    ) -> None:
        super().__init__(kind, message)
        self.missing = sorted(missing)


class FetchError(PacksmithError):
    """An image or buildpack could not be fetched."""

    def __init__(self, kind: ErrorKind, message: str, *, reference: str = "") -> None:
        super().__init__(kind, message)
        self.reference = reference


class PlatformAPIError(PacksmithError):
    """The builder requires a platform API this tool does not implement."""

    def __init__(self, message: str, *, supported: str, requested: str) -> None:
        super().__init__(ErrorKind.INCOMPATIBLE_PLATFORM_API, message)
        self.supported = supported
        self.requested = requested


class PackIOError(PacksmithError):
    """Filesystem failure (temp dirs, layer tars, path resolution)."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(ErrorKind.IO, f"{operation}: {message}")
        self.operation = operation


def symbol(value: str) -> str:
    """Quote an identifier for error and log messages."""
    return f"'{value}'"

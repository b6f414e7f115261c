"""Image reference parsing with weak (docker-style) validation."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict

from packsmith.core.errors import ConfigurationError, ErrorKind

DEFAULT_REGISTRY = "index.docker.io"
DEFAULT_TAG = "latest"

_REPO_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST_RE = re.compile(r"^[a-z0-9]+:[a-f0-9]{32,}$")


class ImageReference(BaseModel):
    """A parsed ``[registry/]repository[:tag|@digest]`` reference."""

    model_config = ConfigDict(frozen=True)

    registry: str
    repository: str
    tag: str = ""
    digest: str = ""

    @classmethod
    def parse(cls, value: str) -> ImageReference:
        """Parse an image name, defaulting registry and tag like docker does.

        Raises ``ConfigurationError(INVALID_REFERENCE)`` for malformed names.
        """
        if not value or value != value.strip():
            raise ConfigurationError(
                ErrorKind.INVALID_REFERENCE, f"invalid image reference '{value}'"
            )

        remainder, digest = value, ""
        if "@" in remainder:
            remainder, digest = remainder.split("@", 1)
            if not _DIGEST_RE.match(digest):
                raise ConfigurationError(
                    ErrorKind.INVALID_REFERENCE, f"invalid digest in reference '{value}'"
                )

        tag = ""
        last_slash = remainder.rfind("/")
        colon = remainder.rfind(":")
        if colon > last_slash:
            remainder, tag = remainder[:colon], remainder[colon + 1:]
            if not _TAG_RE.match(tag):
                raise ConfigurationError(
                    ErrorKind.INVALID_REFERENCE, f"invalid tag in reference '{value}'"
                )

        registry = DEFAULT_REGISTRY
        parts = remainder.split("/")
        first = parts[0]
        if len(parts) > 1 and ("." in first or ":" in first or first == "localhost"):
            registry = first
            parts = parts[1:]
        if registry == "docker.io":
            registry = DEFAULT_REGISTRY
        if registry == DEFAULT_REGISTRY and len(parts) == 1:
            parts = ["library", *parts]

        for component in parts:
            if not _REPO_COMPONENT_RE.match(component):
                raise ConfigurationError(
                    ErrorKind.INVALID_REFERENCE,
                    f"invalid repository component '{component}' in reference '{value}'",
                )

        if not tag and not digest:
            tag = DEFAULT_TAG
        return cls(registry=registry, repository="/".join(parts), tag=tag, digest=digest)

    @property
    def context(self) -> str:
        """Registry plus repository, without tag or digest."""
        return f"{self.registry}/{self.repository}"

    @property
    def name(self) -> str:
        """Fully-qualified name, used as the canonical store key."""
        if self.digest:
            return f"{self.context}@{self.digest}"
        return f"{self.context}:{self.tag}"

    def __str__(self) -> str:
        return self.name

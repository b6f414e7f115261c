"""Build request, lifecycle hand-off, and package configuration models."""

from __future__ import annotations

import tomllib
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from packsmith.core.errors import ConfigurationError, ErrorKind
from packsmith.models.buildpack import BuildpackInfo, Stack


class ProxyConfig(BaseModel):
    """Proxy settings passed through to the lifecycle container."""

    model_config = ConfigDict(frozen=True)

    http_proxy: str = ""
    https_proxy: str = ""
    no_proxy: str = ""


class ContainerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    network: str = ""


class BuildOptions(BaseModel):
    """One build request.

    ``app_path`` defaults to the working directory. ``run_image`` defaults to
    the best mirror from the builder metadata or ``additional_mirrors``.
    ``proxy_config`` defaults to the proxy variables of the environment the
    orchestrator was created with.
    """

    model_config = ConfigDict(frozen=True)

    image: str
    builder: str = ""
    app_path: str = ""
    run_image: str = ""
    additional_mirrors: dict[str, list[str]] = Field(default_factory=dict)
    env: dict[str, str] = Field(default_factory=dict)
    publish: bool = False
    no_pull: bool = False
    clear_cache: bool = False
    buildpacks: list[str] = Field(default_factory=list)
    proxy_config: ProxyConfig | None = None
    container_config: ContainerConfig = Field(default_factory=ContainerConfig)


class LifecycleOptions(BaseModel):
    """Everything the external lifecycle executor receives."""

    model_config = ConfigDict(frozen=True)

    app_path: Path
    image: str
    builder: str
    run_image: str
    clear_cache: bool = False
    publish: bool = False
    http_proxy: str = ""
    https_proxy: str = ""
    no_proxy: str = ""
    network: str = ""


class BuildState(str, Enum):
    """Progress of a single build request. SUCCEEDED and FAILED are terminal."""

    PENDING = "pending"
    RESOLVING = "resolving"
    VALIDATING = "validating"
    COMPOSING = "composing"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class BuildResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: BuildState
    image: str
    builder: str
    ephemeral_builder: str
    run_image: str
    app_path: Path
    buildpacks: list[BuildpackInfo] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# package.toml
# ---------------------------------------------------------------------------


class BuildpackLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    uri: str


class PackageConfig(BaseModel):
    """Schema for a ``package.toml`` describing a buildpack package.

    Example::

        [default]
        id = "example/node"
        version = "1.0.0"

        [[buildpacks]]
        uri = "./node-buildpack"

        [[stacks]]
        id = "io.buildpacks.stacks.bionic"
        mixins = ["build:git"]
    """

    model_config = ConfigDict(frozen=True)

    default: BuildpackInfo | None = None
    buildpacks: list[BuildpackLocation] = Field(default_factory=list)
    stacks: list[Stack] = Field(default_factory=list)

    @classmethod
    def load(cls, path: Path) -> PackageConfig:
        """Read and validate a package.toml file."""
        try:
            with Path(path).open("rb") as handle:
                data = tomllib.load(handle)
        except OSError as exc:
            raise ConfigurationError(
                ErrorKind.INVALID_DESCRIPTOR, f"reading package config '{path}': {exc}"
            ) from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(
                ErrorKind.INVALID_DESCRIPTOR, f"parsing package config '{path}': {exc}"
            ) from exc
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(
                ErrorKind.INVALID_DESCRIPTOR, f"invalid package config '{path}': {exc}"
            ) from exc

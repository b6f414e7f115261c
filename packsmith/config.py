"""Runtime configuration — env-driven.

Centralized config using pydantic-settings. Reads from a .env file and
PACKSMITH_* environment variables.

Proxy variables (HTTP_PROXY and friends) are not read here. The orchestrator
resolves them once, at its entry point, from the environment mapping it is
given.
"""

from __future__ import annotations

import platform
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PacksmithConfig(BaseSettings):
    """Runtime configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export PACKSMITH_LOG_LEVEL=DEBUG
        export PACKSMITH_IMAGE_STORE_PATH=/var/lib/packsmith/images
        export PACKSMITH_DEFAULT_BUILDER=cnbs/sample-builder:bionic

    Or via .env file::

        PACKSMITH_SCRATCH_NAMING=content
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PACKSMITH_",
        env_file_encoding="utf-8",
    )

    # Logging
    log_level: str = "INFO"

    # Storage
    image_store_path: Path = Path(".packsmith/images")

    # Builds
    default_builder: str = ""
    scratch_repository: str = "pack.local/builder"
    scratch_naming: Literal["random", "content"] = "random"
    target_os: str = Field(default_factory=lambda: platform.system().lower())

    # Downloads
    download_timeout_seconds: float = 60.0

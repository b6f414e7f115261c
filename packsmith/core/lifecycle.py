"""Lifecycle executor contract.

The lifecycle runs detect/build/export inside containers and is not part of
this package. The orchestrator hands it a ``LifecycleOptions`` and nothing
else.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from packsmith.models.config import LifecycleOptions

logger = logging.getLogger(__name__)

# Platform API this orchestrator speaks to the lifecycle.
PLATFORM_API_VERSION = "0.2"


@runtime_checkable
class Lifecycle(Protocol):
    def execute(self, options: LifecycleOptions) -> None:
        """Run the build; raise on failure."""
        ...


class DryRunLifecycle:
    """Records and logs lifecycle invocations without running anything."""

    def __init__(self) -> None:
        self.executions: list[LifecycleOptions] = []

    def execute(self, options: LifecycleOptions) -> None:
        logger.info(
            "Lifecycle: building %s from %s with builder %s on run image %s",
            options.image, options.app_path, options.builder, options.run_image,
        )
        self.executions.append(options)

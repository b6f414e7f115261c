"""packsmith: Cloud Native Buildpacks packaging and build orchestration.

- Stack and mixin compatibility engine (builder, run image, buildpacks)
- Buildpack package images with one deterministic layer per buildpack
- Ephemeral builders composed from a base builder plus extra buildpacks
- Build orchestration up to the lifecycle hand-off
"""

__version__ = "0.1.0"
__description__ = "Cloud Native Buildpacks packaging and build orchestration"

from packsmith.core.orchestrator import Orchestrator
from packsmith.cli.app import app as cli

__all__ = ["Orchestrator", "cli", "__version__"]

"""API version model — buildpack and platform API compatibility."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict

_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?$")


class APIVersion(BaseModel):
    """A ``major.minor`` API version as declared by lifecycles and buildpacks.

    Compatibility rules:

    - Pre-1.0 versions are only compatible with themselves.
    - From 1.0 on, a version supports any older minor of the same major.
    """

    model_config = ConfigDict(frozen=True)

    major: int
    minor: int = 0

    @classmethod
    def parse(cls, value: str) -> APIVersion:
        """Parse ``"0.2"`` / ``"v1.3"`` / ``"1"`` into an APIVersion.

        Raises ``ValueError`` for anything else.
        """
        match = _VERSION_RE.match(value.strip())
        if match is None:
            raise ValueError(f"could not parse API version '{value}'")
        return cls(major=int(match.group(1)), minor=int(match.group(2) or 0))

    def supports(self, other: APIVersion) -> bool:
        """Whether an implementation of this version can serve *other*."""
        if (self.major, self.minor) == (other.major, other.minor):
            return True
        if self.major != 0:
            return self.major == other.major and self.minor > other.minor
        return False

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"

"""Image record model persisted by the local image store (immutable)."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class ImageRecord(BaseModel):
    """What the local image store persists for one saved image.

    Layer bytes live in the blob store; the record only lists their diff IDs
    in application order.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    labels: dict[str, str] = Field(default_factory=dict)
    layers: list[str] = Field(default_factory=list)  # diff IDs, bottom first
    saved_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

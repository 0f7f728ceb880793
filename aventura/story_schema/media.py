"""Media catalog entries and references used by nodes and puzzles."""

from __future__ import annotations
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


MediaType = Literal["image", "video", "audio"]
MediaRole = Literal["illustration", "background", "thumb", "video", "audio"]


class MediaAsset(BaseModel):
    """A declared media asset. Nodes and puzzles refer to it by id."""
    model_config = ConfigDict(frozen=True)

    id: str
    type: MediaType
    src: str
    alt: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class MediaRef(BaseModel):
    """Reference from a node or puzzle to a catalog asset."""
    model_config = ConfigDict(frozen=True)

    asset_id: str
    role: MediaRole | None = None

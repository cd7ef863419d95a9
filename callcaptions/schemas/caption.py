"""
Caption records and the data-channel message that relays them.

Field names are snake_case in Python; the wire form (``by_alias=True``) uses
camelCase so browser peers read the same shape they send.
"""
from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class Speaker(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class Caption(BaseModel):
    """One caption line. Immutable once created."""

    id: str = Field(..., description="Opaque unique id, e.g. caption-<ms>-<hex>")
    text: str = Field(..., description="Display text (translated when is_translated)")
    original_text: str = Field(..., alias="originalText", description="Untranslated source transcript")
    speaker: Speaker
    timestamp: int = Field(..., description="Creation time, unix ms")
    language: str = Field(..., description="Target language code the caption was produced for")
    is_translated: bool = Field(False, alias="isTranslated")

    class Config:
        frozen = True
        populate_by_name = True


class RemoteCaptionPayload(BaseModel):
    """Caption body as received from the peer: id and timestamp are reassigned locally."""

    text: str = ""
    original_text: str = Field("", alias="originalText")
    speaker: Speaker = Speaker.REMOTE
    language: str = ""
    is_translated: bool = Field(False, alias="isTranslated")
    id: str | None = None
    timestamp: int | None = None

    class Config:
        populate_by_name = True
        extra = "ignore"


class CaptionRelayMessage(BaseModel):
    """Data-channel record: discriminator tag plus caption body."""

    type: Literal["caption"] = "caption"
    caption: Caption

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

"""
Local media boundary: tracks, streams, and the device layer that grants them.

The device layer (camera/microphone permission prompt) is external;
MediaDevices is its interface. HeadlessMediaDevices grants synthetic tracks
for runs without real capture hardware.
"""
from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from callcaptions.errors import MediaAccessError, MediaAccessReason

logger = logging.getLogger(__name__)


class TrackKind(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


@dataclass
class MediaTrack:
    kind: TrackKind
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    enabled: bool = True
    ready_state: str = "live"  # "live" | "ended"

    def stop(self) -> None:
        self.ready_state = "ended"

    @property
    def ended(self) -> bool:
        return self.ready_state == "ended"


class MediaStream:
    def __init__(self, tracks: list[MediaTrack] | None = None, stream_id: str | None = None) -> None:
        self.id = stream_id or uuid.uuid4().hex
        self._tracks = list(tracks or [])

    def get_tracks(self) -> list[MediaTrack]:
        return list(self._tracks)

    def get_audio_tracks(self) -> list[MediaTrack]:
        return [t for t in self._tracks if t.kind is TrackKind.AUDIO]

    def get_video_tracks(self) -> list[MediaTrack]:
        return [t for t in self._tracks if t.kind is TrackKind.VIDEO]

    def stop(self) -> None:
        for track in self._tracks:
            track.stop()

    def __repr__(self) -> str:
        return f"MediaStream(id={self.id!r}, tracks={[t.kind.value for t in self._tracks]})"


@dataclass
class MediaState:
    """Flags are independent: toggling one never touches the other."""

    audio_enabled: bool = True
    video_enabled: bool = True
    stream: MediaStream | None = None


class MediaDevices(ABC):
    @abstractmethod
    async def get_user_media(self, audio: bool = True, video: bool = True) -> MediaStream:
        """Acquire a stream. Raise MediaAccessError on denied permission or missing device."""
        ...


class HeadlessMediaDevices(MediaDevices):
    """Synthetic camera + microphone. Configurable to deny or lack devices."""

    def __init__(
        self,
        permission_granted: bool = True,
        available: tuple[TrackKind, ...] = (TrackKind.AUDIO, TrackKind.VIDEO),
    ) -> None:
        self.permission_granted = permission_granted
        self.available = available
        self.requests = 0

    async def get_user_media(self, audio: bool = True, video: bool = True) -> MediaStream:
        self.requests += 1
        if not self.permission_granted:
            raise MediaAccessError(MediaAccessReason.PERMISSION_DENIED)
        wanted = [kind for kind, on in ((TrackKind.AUDIO, audio), (TrackKind.VIDEO, video)) if on]
        missing = [kind for kind in wanted if kind not in self.available]
        if missing:
            raise MediaAccessError(
                MediaAccessReason.DEVICE_NOT_FOUND,
                "No camera or microphone found. Please connect a device.",
            )
        return MediaStream([MediaTrack(kind=kind) for kind in wanted])

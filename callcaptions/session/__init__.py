"""Session: peer transport boundary, in-memory transport, local media, orchestrator."""
from .media import (
    HeadlessMediaDevices,
    MediaDevices,
    MediaState,
    MediaStream,
    MediaTrack,
    TrackKind,
)
from .memory import InMemoryBroker, InMemoryTransport
from .orchestrator import (
    MAX_PARTICIPANTS,
    SessionOrchestrator,
    SessionState,
    generate_session_id,
)
from .transport import DataConnection, MediaConnection, PeerEndpoint, PeerTransport

__all__ = [
    "DataConnection",
    "HeadlessMediaDevices",
    "InMemoryBroker",
    "InMemoryTransport",
    "MAX_PARTICIPANTS",
    "MediaConnection",
    "MediaDevices",
    "MediaState",
    "MediaStream",
    "MediaTrack",
    "PeerEndpoint",
    "PeerTransport",
    "SessionOrchestrator",
    "SessionState",
    "TrackKind",
    "generate_session_id",
]

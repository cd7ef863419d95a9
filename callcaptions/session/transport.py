"""
Peer transport boundary.

The external peer service allocates an address for a caller-chosen identity,
opens media calls and data connections between two addresses, and reports
open/data/close/error per connection. ICE/SDP negotiation lives behind it.
Implementations: InMemoryTransport (session.memory), for local two-party runs
and tests. A networked transport (a WebRTC signaling client) plugs in by
subclassing PeerTransport, PeerEndpoint, DataConnection and MediaConnection
and is handed to SessionOrchestrator; nothing above this module changes.
The HTTP app does not build a CallController; callers compose one with
their transport.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from callcaptions.events import EventChannel
from callcaptions.session.media import MediaStream


class DataConnection(ABC):
    """Auxiliary message channel to one remote peer. Payloads are structured records."""

    def __init__(self, peer: str) -> None:
        self.peer = peer
        self.opened: EventChannel[None] = EventChannel("data.open")
        self.data: EventChannel[Any] = EventChannel("data.data")
        self.closed: EventChannel[None] = EventChannel("data.close")
        self.error: EventChannel[Exception] = EventChannel("data.error")

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    def send(self, payload: Any) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        """Idempotent; the remote side sees `closed`."""
        ...


class MediaConnection(ABC):
    """Media call with one remote peer."""

    def __init__(self, peer: str) -> None:
        self.peer = peer
        # Set once the remote side's stream arrives; late subscribers read it here.
        self.remote_stream: MediaStream | None = None
        self.stream: EventChannel[MediaStream] = EventChannel("media.stream")
        self.closed: EventChannel[None] = EventChannel("media.close")
        self.error: EventChannel[Exception] = EventChannel("media.error")

    @abstractmethod
    def answer(self, stream: MediaStream) -> None:
        """Accept an inbound call, sending `stream` back."""
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class PeerEndpoint(ABC):
    """One local address. Emits inbound calls and data connections."""

    def __init__(self, identity: str) -> None:
        self.id = identity
        self.incoming_call: EventChannel[MediaConnection] = EventChannel("peer.call")
        self.incoming_connection: EventChannel[DataConnection] = EventChannel("peer.connection")
        self.disconnected: EventChannel[None] = EventChannel("peer.disconnected")
        self.closed: EventChannel[None] = EventChannel("peer.close")

    @abstractmethod
    async def connect(self, peer_id: str) -> DataConnection:
        """Open a data connection; resolves once open. Raise PeerConnectionError on failure."""
        ...

    @abstractmethod
    async def call(self, peer_id: str, stream: MediaStream) -> MediaConnection:
        """Place a media call carrying `stream`. Raise PeerConnectionError if it cannot be placed."""
        ...

    @abstractmethod
    def destroy(self) -> None:
        """Close every connection and release the identity. Idempotent."""
        ...


class PeerTransport(ABC):
    @abstractmethod
    async def open(self, identity: str) -> PeerEndpoint:
        """Register `identity`. Raise EndpointError (identity_taken, unreachable)."""
        ...

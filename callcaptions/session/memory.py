"""
InMemoryTransport: the peer transport boundary inside one event loop.

The broker plays the signaling relay: it owns the identity registry (a second
open of a live identity fails with identity_taken) and routes connections
between endpoints. Every connection is a pair of legs; closing one leg closes
the other, and payloads and streams are delivered on later loop iterations in
send order, the way a network transport would deliver them.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from callcaptions.errors import EndpointError, EndpointErrorReason, PeerConnectionError
from callcaptions.session.media import MediaStream
from callcaptions.session.transport import DataConnection, MediaConnection, PeerEndpoint, PeerTransport

logger = logging.getLogger(__name__)


class InMemoryBroker:
    """Identity registry shared by every InMemoryTransport of one process."""

    def __init__(self, reachable: bool = True) -> None:
        self._endpoints: dict[str, InMemoryEndpoint] = {}
        self.reachable = reachable

    def register(self, endpoint: InMemoryEndpoint) -> None:
        if not self.reachable:
            raise EndpointError(endpoint.id, EndpointErrorReason.UNREACHABLE)
        if endpoint.id in self._endpoints:
            raise EndpointError(endpoint.id, EndpointErrorReason.IDENTITY_TAKEN, f"ID {endpoint.id!r} is taken")
        self._endpoints[endpoint.id] = endpoint

    def unregister(self, endpoint: InMemoryEndpoint) -> None:
        if self._endpoints.get(endpoint.id) is endpoint:
            del self._endpoints[endpoint.id]

    def lookup(self, identity: str) -> InMemoryEndpoint | None:
        return self._endpoints.get(identity)

    @property
    def identities(self) -> list[str]:
        return list(self._endpoints)


class InMemoryDataConnection(DataConnection):
    def __init__(self, peer: str) -> None:
        super().__init__(peer)
        self._open = True
        self._remote: InMemoryDataConnection | None = None

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, payload: Any) -> None:
        if not self._open or self._remote is None:
            raise PeerConnectionError(self.peer, "Connection is not open")
        asyncio.get_running_loop().call_soon(self._remote._deliver, payload)

    def _deliver(self, payload: Any) -> None:
        if self._open:
            self.data.emit(payload)

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        self.closed.emit(None)
        remote = self._remote
        if remote is not None and remote.is_open:
            asyncio.get_running_loop().call_soon(remote.close)


class InMemoryMediaConnection(MediaConnection):
    def __init__(self, peer: str, local_stream: MediaStream | None = None) -> None:
        super().__init__(peer)
        self.local_stream = local_stream
        self.answered = False
        self._open = True
        self._remote: InMemoryMediaConnection | None = None

    @property
    def is_open(self) -> bool:
        return self._open

    def answer(self, stream: MediaStream) -> None:
        if not self._open or self._remote is None:
            raise PeerConnectionError(self.peer, "Call is no longer open")
        self.answered = True
        self.local_stream = stream
        loop = asyncio.get_running_loop()
        loop.call_soon(self._receive, self._remote.local_stream)
        loop.call_soon(self._remote._receive, stream)

    def _receive(self, stream: MediaStream | None) -> None:
        if self._open and stream is not None:
            self.remote_stream = stream
            self.stream.emit(stream)

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        self.remote_stream = None
        self.closed.emit(None)
        remote = self._remote
        if remote is not None and remote.is_open:
            asyncio.get_running_loop().call_soon(remote.close)


class InMemoryEndpoint(PeerEndpoint):
    def __init__(self, identity: str, broker: InMemoryBroker) -> None:
        super().__init__(identity)
        self._broker = broker
        self._destroyed = False
        self._data_connections: list[InMemoryDataConnection] = []
        self._media_connections: list[InMemoryMediaConnection] = []

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def _target(self, peer_id: str) -> InMemoryEndpoint:
        if self._destroyed:
            raise PeerConnectionError(peer_id, "Local endpoint is destroyed")
        target = self._broker.lookup(peer_id)
        if target is None or target.destroyed:
            raise PeerConnectionError(peer_id, f"Could not connect to peer {peer_id!r}: peer unavailable")
        return target

    async def connect(self, peer_id: str) -> DataConnection:
        target = self._target(peer_id)
        local = InMemoryDataConnection(peer_id)
        remote = InMemoryDataConnection(self.id)
        local._remote, remote._remote = remote, local
        self._data_connections.append(local)
        target._data_connections.append(remote)

        target.incoming_connection.emit(remote)
        # A rejecting peer closes its leg right away; the close reaches us next iteration.
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        if not local.is_open:
            raise PeerConnectionError(peer_id, f"Peer {peer_id!r} rejected the connection")
        local.opened.emit(None)
        return local

    async def call(self, peer_id: str, stream: MediaStream) -> MediaConnection:
        target = self._target(peer_id)
        local = InMemoryMediaConnection(peer_id, local_stream=stream)
        remote = InMemoryMediaConnection(self.id)
        local._remote, remote._remote = remote, local
        self._media_connections.append(local)
        target._media_connections.append(remote)

        target.incoming_call.emit(remote)
        await asyncio.sleep(0)
        return local

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        for conn in self._data_connections:
            conn.close()
        for call in self._media_connections:
            call.close()
        self._data_connections.clear()
        self._media_connections.clear()
        self._broker.unregister(self)
        self.closed.emit(None)


class InMemoryTransport(PeerTransport):
    def __init__(self, broker: InMemoryBroker) -> None:
        self._broker = broker

    async def open(self, identity: str) -> PeerEndpoint:
        # Registration is a round-trip to the relay.
        await asyncio.sleep(0)
        endpoint = InMemoryEndpoint(identity, self._broker)
        self._broker.register(endpoint)
        logger.debug("Endpoint %s registered", identity)
        return endpoint

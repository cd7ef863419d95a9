"""
SessionOrchestrator: local identity, peer connections, and the two-participant limit.

State machine per local endpoint:

    UNOPENED -> OPENING -> OPEN (1) -> PAIRED (2) -> CLOSED
    OPENING -> CLOSED   open failed, or disconnect() while opening
    PAIRED  -> OPEN     remote peer left; endpoint stays usable for a new pairing
    CLOSED  -> OPENING  the orchestrator can open a new session after disconnect()

ParticipantCount is derived from the state and only changes in _transition().
An inbound call or data connection is admitted synchronously (the slot is
reserved before any await), so two concurrent attempts can never both pair.
A second inbound leg from the already-paired peer completes that pairing.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Coroutine

from callcaptions.errors import CallCaptionsError, EndpointError, EndpointErrorReason, PeerConnectionError
from callcaptions.events import EventChannel
from callcaptions.session.media import MediaDevices, MediaState, MediaStream
from callcaptions.session.transport import DataConnection, MediaConnection, PeerEndpoint, PeerTransport

logger = logging.getLogger(__name__)

MAX_PARTICIPANTS = 2


class SessionState(str, Enum):
    UNOPENED = "unopened"
    OPENING = "opening"
    OPEN = "open"
    PAIRED = "paired"
    CLOSED = "closed"


PARTICIPANTS: dict[SessionState, int] = {
    SessionState.UNOPENED: 0,
    SessionState.OPENING: 0,
    SessionState.OPEN: 1,
    SessionState.PAIRED: 2,
    SessionState.CLOSED: 0,
}

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.UNOPENED: frozenset({SessionState.OPENING}),
    SessionState.OPENING: frozenset({SessionState.OPEN, SessionState.CLOSED}),
    SessionState.OPEN: frozenset({SessionState.PAIRED, SessionState.CLOSED}),
    SessionState.PAIRED: frozenset({SessionState.OPEN, SessionState.CLOSED}),
    SessionState.CLOSED: frozenset({SessionState.OPENING}),
}


def generate_session_id() -> str:
    """Random identity (uuid4, os.urandom backed). Never allocated centrally."""
    return str(uuid.uuid4())


class SessionOrchestrator:
    def __init__(self, transport: PeerTransport, devices: MediaDevices) -> None:
        self._transport = transport
        self._devices = devices
        self._state = SessionState.UNOPENED
        self._endpoint: PeerEndpoint | None = None
        self._endpoint_unsubscribe: list[Callable[[], None]] = []
        self._peer_id: str | None = None
        self._data_connection: DataConnection | None = None
        self._media_connection: MediaConnection | None = None
        self._remote_stream: MediaStream | None = None
        self._media = MediaState()
        self._media_request: asyncio.Task[MediaStream] | None = None
        # Bumped by disconnect(); awaits that resume under an older generation are stale.
        self._generation = 0
        self._tasks: set[asyncio.Task[Any]] = set()

        self.session_created: EventChannel[str] = EventChannel("session.created")
        self.connected: EventChannel[str] = EventChannel("session.connected")
        self.disconnected: EventChannel[None] = EventChannel("session.disconnected")
        self.peer_disconnected: EventChannel[None] = EventChannel("session.peer_disconnected")
        self.peer_closed: EventChannel[None] = EventChannel("session.peer_closed")
        self.local_stream: EventChannel[MediaStream] = EventChannel("session.local_stream")
        self.remote_stream: EventChannel[MediaStream] = EventChannel("session.remote_stream")
        self.audio_toggled: EventChannel[bool] = EventChannel("session.audio_toggled")
        self.video_toggled: EventChannel[bool] = EventChannel("session.video_toggled")
        self.data: EventChannel[Any] = EventChannel("session.data")
        self.media_connection_closed: EventChannel[None] = EventChannel("session.media_connection_closed")
        self.media_connection_error: EventChannel[Exception] = EventChannel("session.media_connection_error")

    # --- read-only state ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def participant_count(self) -> int:
        return PARTICIPANTS[self._state]

    @property
    def identity(self) -> str | None:
        return self._endpoint.id if self._endpoint is not None else None

    @property
    def peer_id(self) -> str | None:
        return self._peer_id

    def get_remote_stream(self) -> MediaStream | None:
        return self._remote_stream

    def get_media_state(self) -> MediaState:
        return replace(self._media)

    def _transition(self, target: SessionState) -> bool:
        """The only place the state (and so ParticipantCount) changes."""
        current = self._state
        if target not in _TRANSITIONS[current]:
            logger.warning("Refusing session transition %s -> %s", current.value, target.value)
            return False
        if PARTICIPANTS[target] > MAX_PARTICIPANTS:
            logger.warning("Refusing session transition %s -> %s: over capacity", current.value, target.value)
            return False
        self._state = target
        logger.debug("Session %s -> %s (participants=%d)", current.value, target.value, PARTICIPANTS[target])
        return True

    # --- session lifecycle ---

    async def create_session(self, identity: str | None = None) -> str:
        """Open the local endpoint as host. Raises EndpointError (identity_taken on collision)."""
        identity = identity or generate_session_id()
        self._ensure_idle(identity)
        await self._open_endpoint(identity)
        logger.info("Session created: %s", identity)
        self.session_created.emit(identity)
        return identity

    async def join_session(self, identity: str) -> None:
        """
        Join the host at `identity` from a fresh local endpoint: data channel
        first, then a media call carrying the local stream. Both must succeed.

        Raises EndpointError if the local endpoint cannot open, MediaAccessError
        if local media cannot be acquired, PeerConnectionError if either leg
        fails. A failed join leaves the orchestrator CLOSED.
        """
        self._ensure_idle(identity)
        endpoint = await self._open_endpoint(generate_session_id())
        generation = self._generation

        try:
            stream = await self.get_local_stream()
        except CallCaptionsError:
            self._fail_join(generation)
            raise
        self._ensure_current(generation, identity)

        if not self._transition(SessionState.PAIRED):
            self._fail_join(generation)
            raise PeerConnectionError(identity, "Session is already paired")
        self._peer_id = identity

        try:
            conn = await endpoint.connect(identity)
        except PeerConnectionError:
            self._fail_join(generation)
            raise
        if generation != self._generation:
            conn.close()
            raise self._closed_error(identity)
        self._bind_data(conn)

        try:
            call = await endpoint.call(identity, stream)
        except PeerConnectionError:
            self._fail_join(generation)
            raise
        if generation != self._generation:
            call.close()
            raise self._closed_error(identity)
        if self._state is not SessionState.PAIRED:
            call.close()
            self._fail_join(generation)
            raise PeerConnectionError(identity, f"Peer {identity!r} left during join")
        self._bind_media(call)

        logger.info("Joined session %s as %s", identity, endpoint.id)
        self.connected.emit(identity)

    def disconnect(self) -> None:
        """Tear everything down. Safe to call repeatedly and from any state."""
        self._teardown()
        logger.info("Session disconnected")
        self.disconnected.emit(None)

    def _ensure_idle(self, identity: str) -> None:
        if self._state in (SessionState.OPENING, SessionState.OPEN, SessionState.PAIRED):
            raise EndpointError(
                identity, EndpointErrorReason.ALREADY_OPEN, "A session is already open; disconnect first"
            )

    def _ensure_current(self, generation: int, identity: str) -> None:
        if generation != self._generation:
            raise self._closed_error(identity)

    @staticmethod
    def _closed_error(identity: str) -> EndpointError:
        return EndpointError(identity, EndpointErrorReason.CLOSED, "Session was disconnected")

    async def _open_endpoint(self, identity: str) -> PeerEndpoint:
        self._transition(SessionState.OPENING)
        generation = self._generation
        try:
            endpoint = await self._transport.open(identity)
        except Exception:
            if generation == self._generation:
                self._transition(SessionState.CLOSED)
            raise
        if generation != self._generation:
            endpoint.destroy()
            raise self._closed_error(identity)

        self._endpoint = endpoint
        self._endpoint_unsubscribe = [
            endpoint.incoming_call.subscribe(self._on_incoming_call),
            endpoint.incoming_connection.subscribe(self._on_incoming_connection),
            endpoint.disconnected.subscribe(self._on_endpoint_disconnected),
            endpoint.closed.subscribe(self._on_endpoint_closed),
        ]
        self._transition(SessionState.OPEN)
        return endpoint

    def _fail_join(self, generation: int) -> None:
        if generation == self._generation:
            self._teardown()

    def _teardown(self) -> None:
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        if self._media.stream is not None:
            self._media.stream.stop()
        self._media_request = None

        data, media = self._data_connection, self._media_connection
        self._data_connection = None
        self._media_connection = None
        if data is not None:
            data.close()
        if media is not None:
            media.close()

        endpoint = self._endpoint
        self._endpoint = None
        if endpoint is not None:
            endpoint.destroy()
        for unsubscribe in self._endpoint_unsubscribe:
            unsubscribe()
        self._endpoint_unsubscribe = []

        self._remote_stream = None
        self._peer_id = None
        if self._state not in (SessionState.UNOPENED, SessionState.CLOSED):
            self._transition(SessionState.CLOSED)
        self._media = MediaState()

    # --- local media ---

    async def get_local_stream(self) -> MediaStream:
        """Acquire camera + microphone once; concurrent callers share one request."""
        if self._media.stream is not None:
            return self._media.stream
        if self._media_request is None:
            self._media_request = asyncio.get_running_loop().create_task(self._acquire_media())
        request = self._media_request
        try:
            return await asyncio.shield(request)
        finally:
            if request.done() and self._media_request is request:
                self._media_request = None

    async def _acquire_media(self) -> MediaStream:
        generation = self._generation
        try:
            stream = await self._devices.get_user_media(audio=True, video=True)
        except CallCaptionsError as e:
            logger.error("Error getting local stream: %s", e)
            raise
        if generation != self._generation:
            stream.stop()
            raise self._closed_error(self.identity or "")
        self._media.stream = stream
        logger.info("Local stream acquired: %r", stream)
        self.local_stream.emit(stream)
        return stream

    def toggle_audio(self, enabled: bool) -> None:
        stream = self._media.stream
        if stream is None:
            return
        for track in stream.get_audio_tracks():
            track.enabled = enabled
        self._media.audio_enabled = enabled
        self.audio_toggled.emit(enabled)

    def toggle_video(self, enabled: bool) -> None:
        stream = self._media.stream
        if stream is None:
            return
        for track in stream.get_video_tracks():
            track.enabled = enabled
        self._media.video_enabled = enabled
        self.video_toggled.emit(enabled)

    # --- data channel ---

    def send_data(self, payload: Any) -> None:
        """Best effort: dropped without error while the channel is not open."""
        conn = self._data_connection
        if conn is None or not conn.is_open:
            logger.debug("Data channel not open; dropping payload")
            return
        try:
            conn.send(payload)
        except PeerConnectionError as e:
            logger.debug("Dropping payload: %s", e)

    # --- inbound ---

    def _admit(self, peer_id: str, conn: DataConnection | MediaConnection) -> bool:
        """Reserve the pairing for an inbound leg. Never awaits."""
        if self._state is SessionState.OPEN:
            if not self._transition(SessionState.PAIRED):
                return False
            self._peer_id = peer_id
            return True
        if self._state is SessionState.PAIRED and peer_id == self._peer_id:
            slot = self._data_connection if isinstance(conn, DataConnection) else self._media_connection
            return slot is None
        return False

    def _on_incoming_connection(self, conn: DataConnection) -> None:
        if not self._admit(conn.peer, conn):
            logger.warning("Third participant attempted to connect. Rejecting connection from %s", conn.peer)
            conn.close()
            return
        self._bind_data(conn)
        logger.info("Peer %s connected", conn.peer)
        self.connected.emit(conn.peer)

    def _on_incoming_call(self, call: MediaConnection) -> None:
        if not self._admit(call.peer, call):
            logger.warning("Third participant attempted to join. Rejecting call from %s", call.peer)
            call.close()
            return
        self._bind_media(call)
        self._spawn(self._answer(call))

    async def _answer(self, call: MediaConnection) -> None:
        try:
            stream = await self.get_local_stream()
        except CallCaptionsError as e:
            logger.error("Error answering call from %s: %s", call.peer, e)
            call.close()
            return
        if call is not self._media_connection:
            return
        try:
            call.answer(stream)
        except PeerConnectionError as e:
            logger.error("Error answering call from %s: %s", call.peer, e)
            call.close()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # --- connection wiring ---

    def _bind_data(self, conn: DataConnection) -> None:
        self._data_connection = conn
        conn.data.subscribe(lambda payload: self._on_data(conn, payload))
        conn.closed.subscribe(lambda _: self._on_leg_closed(conn))
        conn.error.subscribe(lambda e: logger.error("Data connection error with %s: %s", conn.peer, e))

    def _bind_media(self, call: MediaConnection) -> None:
        self._media_connection = call
        call.stream.subscribe(lambda stream: self._on_remote_stream(call, stream))
        call.closed.subscribe(lambda _: self._on_leg_closed(call))
        call.error.subscribe(lambda e: self._on_media_error(call, e))
        if call.remote_stream is not None:
            self._on_remote_stream(call, call.remote_stream)

    def _on_data(self, conn: DataConnection, payload: Any) -> None:
        if conn is self._data_connection:
            self.data.emit(payload)

    def _on_remote_stream(self, call: MediaConnection, stream: MediaStream) -> None:
        if call is not self._media_connection:
            return
        self._remote_stream = stream
        logger.info("Remote stream received from %s", call.peer)
        self.remote_stream.emit(stream)

    def _on_media_error(self, call: MediaConnection, error: Exception) -> None:
        if call is self._media_connection:
            logger.error("Media connection error: %s", error)
            self.media_connection_error.emit(error)

    def _on_leg_closed(self, conn: DataConnection | MediaConnection) -> None:
        if conn is self._media_connection:
            self._media_connection = None
            self._remote_stream = None
            self.media_connection_closed.emit(None)
        elif conn is self._data_connection:
            self._data_connection = None
        else:
            return
        if self._state is SessionState.PAIRED:
            self._release_peer()

    def _release_peer(self) -> None:
        """PAIRED -> OPEN after the remote side left: drop its legs and stream."""
        data, media = self._data_connection, self._media_connection
        self._data_connection = None
        self._media_connection = None
        self._remote_stream = None
        peer = self._peer_id
        self._peer_id = None
        if data is not None:
            data.close()
        if media is not None:
            media.close()
            self.media_connection_closed.emit(None)
        if self._transition(SessionState.OPEN):
            logger.info("Peer %s left; session open for a new participant", peer)
            self.peer_disconnected.emit(None)

    def _on_endpoint_disconnected(self, _: None) -> None:
        logger.warning("Lost connection to the signaling relay; established connections are kept")

    def _on_endpoint_closed(self, _: None) -> None:
        self.peer_closed.emit(None)

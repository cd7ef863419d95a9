"""
CallController: wires SessionOrchestrator and CaptionPipeline into one call.

- establish(identity) resolves the host/join race: opening the identity as host
  either succeeds (HostRole) or fails with identity_taken, in which case the
  same identity is joined as guest (GuestRole). Any other failure propagates.
- Inbound data messages tagged "caption" go to CaptionPipeline.process_remote_caption.
- Local captions are relayed to the peer as {"type": "caption", "caption": {...}}.
- Connection state: connecting while the call is being set up or the peer has
  left and the session waits for another; connected once established;
  disconnected after end_call or a failed start.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Union

from callcaptions.captions.pipeline import CaptionPipeline
from callcaptions.config import get_settings
from callcaptions.errors import EndpointError
from callcaptions.events import EventChannel
from callcaptions.schemas.caption import Caption, CaptionRelayMessage, Speaker
from callcaptions.session.orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostRole:
    identity: str


@dataclass(frozen=True)
class GuestRole:
    identity: str


CallRole = Union[HostRole, GuestRole]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class CallController:
    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        pipeline: CaptionPipeline,
        join_delay: float | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._pipeline = pipeline
        self._join_delay = join_delay if join_delay is not None else get_settings().JOIN_DELAY_SECONDS
        self._connection_state = ConnectionState.DISCONNECTED
        self._role: CallRole | None = None
        self._pending: set[asyncio.Task[Any]] = set()

        self.state_changed: EventChannel[ConnectionState] = EventChannel("call.state")

        self._unsubscribe: list[Callable[[], None]] = [
            orchestrator.data.subscribe(self._on_data),
            orchestrator.connected.subscribe(lambda _: self._set_state(ConnectionState.CONNECTED)),
            orchestrator.remote_stream.subscribe(lambda _: self._set_state(ConnectionState.CONNECTED)),
            orchestrator.disconnected.subscribe(lambda _: self._set_state(ConnectionState.DISCONNECTED)),
            orchestrator.peer_disconnected.subscribe(self._on_peer_disconnected),
            pipeline.caption.subscribe(self._relay_local_caption),
        ]

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection_state

    @property
    def is_connected(self) -> bool:
        return self._connection_state is ConnectionState.CONNECTED

    @property
    def role(self) -> CallRole | None:
        return self._role

    @property
    def audio_enabled(self) -> bool:
        return self._orchestrator.get_media_state().audio_enabled

    @property
    def video_enabled(self) -> bool:
        return self._orchestrator.get_media_state().video_enabled

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._connection_state:
            return
        self._connection_state = state
        self.state_changed.emit(state)

    async def establish(self, identity: str) -> CallRole:
        """Host under `identity` if it is free, otherwise join the host already holding it."""
        try:
            await self._orchestrator.create_session(identity)
        except EndpointError as e:
            if not e.identity_taken:
                raise
            logger.info("Session %s exists, joining as guest", identity)
            if self._join_delay > 0:
                await asyncio.sleep(self._join_delay)
            await self._orchestrator.join_session(identity)
            return GuestRole(identity)
        logger.info("Created session %s as host", identity)
        return HostRole(identity)

    async def start_call(self, identity: str, target_language: str | None = None) -> CallRole:
        self._set_state(ConnectionState.CONNECTING)
        try:
            role = await self.establish(identity)
        except Exception:
            logger.exception("Call initialization error")
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        self._role = role
        self._pipeline.start_local_captions(target_language)
        self._set_state(ConnectionState.CONNECTED)
        return role

    def toggle_audio(self) -> bool:
        """Flip the microphone; captions are muted along with it. No-op before local media exists."""
        self._orchestrator.toggle_audio(not self.audio_enabled)
        enabled = self.audio_enabled
        self._pipeline.set_muted(not enabled)
        return enabled

    def toggle_video(self) -> bool:
        self._orchestrator.toggle_video(not self.video_enabled)
        return self.video_enabled

    def set_language(self, language: str) -> None:
        self._pipeline.set_target_language(language)

    def get_captions(self) -> list[Caption]:
        return self._pipeline.get_captions()

    def end_call(self) -> None:
        self._orchestrator.disconnect()
        self._pipeline.stop_local_captions()
        self._role = None
        self._set_state(ConnectionState.DISCONNECTED)

    async def flush(self) -> None:
        """Wait for relayed captions still being processed."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        await self._pipeline.flush()

    def destroy(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        for task in list(self._pending):
            task.cancel()
        self.state_changed.clear()

    def _on_peer_disconnected(self, _: None) -> None:
        # Session stays open for the next peer
        logger.info("Peer left the call; waiting for a new participant")
        self._set_state(ConnectionState.CONNECTING)

    def _on_data(self, payload: Any) -> None:
        if not isinstance(payload, dict) or payload.get("type") != "caption":
            logger.debug("Ignoring data message: %r", payload)
            return
        body = payload.get("caption")
        if not isinstance(body, dict):
            logger.warning("Caption message without a caption body")
            return
        task = asyncio.get_running_loop().create_task(self._pipeline.process_remote_caption(body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _relay_local_caption(self, caption: Caption) -> None:
        if caption.speaker is not Speaker.LOCAL:
            return
        self._orchestrator.send_data(CaptionRelayMessage(caption=caption).to_wire())

"""Tests for SessionOrchestrator over the in-memory transport."""

import asyncio
from unittest.mock import MagicMock

import pytest

from callcaptions.errors import (
    EndpointError,
    EndpointErrorReason,
    MediaAccessError,
    MediaAccessReason,
    PeerConnectionError,
)
from callcaptions.session import (
    HeadlessMediaDevices,
    InMemoryBroker,
    InMemoryTransport,
    SessionOrchestrator,
    SessionState,
    TrackKind,
    generate_session_id,
)
from callcaptions.session.memory import InMemoryDataConnection, InMemoryMediaConnection


@pytest.fixture
async def paired(make_orchestrator, settle):
    """Host and guest connected over the shared broker."""
    host = make_orchestrator()
    guest = make_orchestrator()
    identity = await host.create_session()
    await guest.join_session(identity)
    await settle()
    return host, guest


class TestSessionIdentity:
    """Tests for identity generation."""

    def test_generated_identities_are_distinct(self):
        identities = {generate_session_id() for _ in range(20)}

        assert len(identities) == 20

    async def test_sessions_get_distinct_identities(self, make_orchestrator):
        identities = [await make_orchestrator().create_session() for _ in range(20)]

        assert len(set(identities)) == 20


class TestCreateSession:
    """Tests for opening the local endpoint as host."""

    async def test_create(self, make_orchestrator):
        orchestrator = make_orchestrator()
        created = MagicMock()
        orchestrator.session_created.subscribe(created)

        identity = await orchestrator.create_session()

        assert orchestrator.state is SessionState.OPEN
        assert orchestrator.participant_count == 1
        assert orchestrator.identity == identity
        created.assert_called_once_with(identity)

    async def test_identity_taken(self, make_orchestrator):
        await make_orchestrator().create_session("shared-link")
        second = make_orchestrator()

        with pytest.raises(EndpointError) as exc_info:
            await second.create_session("shared-link")

        assert exc_info.value.identity_taken
        assert second.state is SessionState.CLOSED
        assert second.participant_count == 0

    async def test_relay_unreachable(self):
        orchestrator = SessionOrchestrator(InMemoryTransport(InMemoryBroker(reachable=False)), HeadlessMediaDevices())

        with pytest.raises(EndpointError) as exc_info:
            await orchestrator.create_session()

        assert exc_info.value.reason is EndpointErrorReason.UNREACHABLE
        assert orchestrator.participant_count == 0

    async def test_create_while_open(self, make_orchestrator):
        orchestrator = make_orchestrator()
        await orchestrator.create_session()

        with pytest.raises(EndpointError) as exc_info:
            await orchestrator.create_session()

        assert exc_info.value.reason is EndpointErrorReason.ALREADY_OPEN
        assert orchestrator.participant_count == 1

    async def test_disconnect_while_opening(self, make_orchestrator, broker):
        orchestrator = make_orchestrator()
        pending = asyncio.ensure_future(orchestrator.create_session("early-exit"))
        await asyncio.sleep(0)
        assert orchestrator.state is SessionState.OPENING

        orchestrator.disconnect()

        with pytest.raises(EndpointError) as exc_info:
            await pending
        assert exc_info.value.reason is EndpointErrorReason.CLOSED
        assert orchestrator.state is SessionState.CLOSED
        assert broker.identities == []

    async def test_reopen_after_disconnect(self, make_orchestrator):
        orchestrator = make_orchestrator()
        await orchestrator.create_session()
        orchestrator.disconnect()

        await orchestrator.create_session()

        assert orchestrator.participant_count == 1


class TestJoinSession:
    """Tests for joining a host."""

    async def test_join_pairs_both_sides(self, paired):
        host, guest = paired

        assert host.participant_count == 2
        assert guest.participant_count == 2
        assert guest.identity != host.identity
        assert guest.peer_id == host.identity
        assert host.peer_id == guest.identity

    async def test_remote_streams_exchanged(self, paired):
        host, guest = paired

        assert host.get_remote_stream() is guest.get_media_state().stream
        assert guest.get_remote_stream() is host.get_media_state().stream

    async def test_connected_events(self, make_orchestrator, settle):
        host = make_orchestrator()
        guest = make_orchestrator()
        host_connected, guest_connected = MagicMock(), MagicMock()
        host.connected.subscribe(host_connected)
        guest.connected.subscribe(guest_connected)

        identity = await host.create_session()
        await guest.join_session(identity)
        await settle()

        host_connected.assert_called_once_with(guest.identity)
        guest_connected.assert_called_once_with(identity)

    async def test_join_unknown_identity(self, make_orchestrator):
        guest = make_orchestrator()

        with pytest.raises(PeerConnectionError):
            await guest.join_session("nobody-here")

        assert guest.state is SessionState.CLOSED
        assert guest.participant_count == 0

    async def test_join_without_media_permission(self, make_orchestrator):
        host = make_orchestrator()
        identity = await host.create_session()
        guest = make_orchestrator(HeadlessMediaDevices(permission_granted=False))

        with pytest.raises(MediaAccessError) as exc_info:
            await guest.join_session(identity)

        assert exc_info.value.reason is MediaAccessReason.PERMISSION_DENIED
        assert guest.state is SessionState.CLOSED
        assert host.participant_count == 1

    async def test_host_without_media_releases_pairing(self, make_orchestrator, settle):
        host = make_orchestrator(HeadlessMediaDevices(permission_granted=False))
        guest = make_orchestrator()
        identity = await host.create_session()

        await guest.join_session(identity)
        await settle(20)

        assert host.participant_count == 1
        assert guest.participant_count == 1
        assert guest.get_remote_stream() is None


class TestCapacity:
    """Tests for the two-participant limit."""

    async def test_third_participant_rejected(self, paired, make_orchestrator, settle):
        host, guest = paired
        remote_before = host.get_remote_stream()
        third = make_orchestrator()

        with pytest.raises(PeerConnectionError):
            await third.join_session(host.identity)
        await settle()

        assert host.participant_count == 2
        assert host.peer_id == guest.identity
        assert host.get_remote_stream() is remote_before
        assert guest.participant_count == 2
        assert third.participant_count == 0

    async def test_third_inbound_call_rejected(self, paired, settle):
        host, guest = paired
        call = InMemoryMediaConnection("intruder")

        host._on_incoming_call(call)
        await settle()

        assert not call.is_open
        assert not call.answered
        assert host.participant_count == 2

    def test_inbound_without_endpoint_rejected(self):
        orchestrator = SessionOrchestrator(InMemoryTransport(InMemoryBroker()), HeadlessMediaDevices())
        conn = InMemoryDataConnection("intruder")

        orchestrator._on_incoming_connection(conn)

        assert not conn.is_open
        assert orchestrator.participant_count == 0

    async def test_inbound_while_open_is_accepted(self, make_orchestrator):
        host = make_orchestrator()
        await host.create_session()
        conn = InMemoryDataConnection("guest")

        host._on_incoming_connection(conn)

        assert conn.is_open
        assert host.participant_count == 2

    async def test_concurrent_inbound_only_one_admitted(self, make_orchestrator):
        host = make_orchestrator()
        await host.create_session()
        first = InMemoryDataConnection("guest-a")
        second = InMemoryDataConnection("guest-b")

        host._on_incoming_connection(first)
        host._on_incoming_connection(second)

        assert first.is_open
        assert not second.is_open
        assert host.peer_id == "guest-a"

    async def test_count_never_leaves_bounds(self, paired, make_orchestrator, settle):
        host, guest = paired
        counts = []
        for orchestrator in (host, guest):
            for channel in (orchestrator.connected, orchestrator.peer_disconnected, orchestrator.disconnected):
                channel.subscribe(lambda _, o=orchestrator: counts.append(o.participant_count))

        guest.disconnect()
        await settle()
        newcomer = make_orchestrator()
        await newcomer.join_session(host.identity)
        await settle()

        assert counts
        assert all(0 <= c <= 2 for c in counts)


class TestLocalMedia:
    """Tests for stream acquisition and toggles."""

    async def test_local_stream_is_idempotent(self, make_orchestrator, devices):
        orchestrator = make_orchestrator(devices)

        first = await orchestrator.get_local_stream()
        second = await orchestrator.get_local_stream()

        assert first is second
        assert devices.requests == 1

    async def test_concurrent_requests_share_one_prompt(self, make_orchestrator, devices):
        orchestrator = make_orchestrator(devices)

        first, second = await asyncio.gather(orchestrator.get_local_stream(), orchestrator.get_local_stream())

        assert first is second
        assert devices.requests == 1

    async def test_no_device(self, make_orchestrator):
        orchestrator = make_orchestrator(HeadlessMediaDevices(available=(TrackKind.AUDIO,)))

        with pytest.raises(MediaAccessError) as exc_info:
            await orchestrator.get_local_stream()

        assert exc_info.value.reason is MediaAccessReason.DEVICE_NOT_FOUND

    async def test_retry_after_denied_permission(self, make_orchestrator):
        devices = HeadlessMediaDevices(permission_granted=False)
        orchestrator = make_orchestrator(devices)
        with pytest.raises(MediaAccessError):
            await orchestrator.get_local_stream()

        devices.permission_granted = True
        stream = await orchestrator.get_local_stream()

        assert stream is not None
        assert devices.requests == 2

    @pytest.mark.parametrize("audio,video", [(True, True), (True, False), (False, True), (False, False)])
    async def test_toggles_are_independent(self, make_orchestrator, audio, video):
        orchestrator = make_orchestrator()
        stream = await orchestrator.get_local_stream()

        orchestrator.toggle_audio(audio)
        state = orchestrator.get_media_state()
        assert (state.audio_enabled, state.video_enabled) == (audio, True)

        orchestrator.toggle_video(video)
        state = orchestrator.get_media_state()
        assert (state.audio_enabled, state.video_enabled) == (audio, video)
        assert all(t.enabled == audio for t in stream.get_audio_tracks())
        assert all(t.enabled == video for t in stream.get_video_tracks())

    async def test_toggle_emits_event(self, make_orchestrator):
        orchestrator = make_orchestrator()
        await orchestrator.get_local_stream()
        toggled = MagicMock()
        orchestrator.audio_toggled.subscribe(toggled)

        orchestrator.toggle_audio(False)

        toggled.assert_called_once_with(False)

    def test_toggle_without_stream_is_noop(self):
        orchestrator = SessionOrchestrator(InMemoryTransport(InMemoryBroker()), HeadlessMediaDevices())
        toggled = MagicMock()
        orchestrator.video_toggled.subscribe(toggled)

        orchestrator.toggle_video(False)

        toggled.assert_not_called()
        assert orchestrator.get_media_state().video_enabled

    async def test_media_state_is_a_copy(self, make_orchestrator):
        orchestrator = make_orchestrator()
        await orchestrator.get_local_stream()

        state = orchestrator.get_media_state()
        state.audio_enabled = False

        assert orchestrator.get_media_state().audio_enabled


class TestDataChannel:
    """Tests for the auxiliary data channel."""

    async def test_send_reaches_peer(self, paired, settle):
        host, guest = paired
        received = []
        guest.data.subscribe(received.append)

        host.send_data({"type": "caption", "caption": {"text": "hi"}})
        await settle()

        assert received == [{"type": "caption", "caption": {"text": "hi"}}]

    def test_send_without_channel_is_dropped(self):
        orchestrator = SessionOrchestrator(InMemoryTransport(InMemoryBroker()), HeadlessMediaDevices())

        orchestrator.send_data({"type": "caption"})


class TestDisconnect:
    """Tests for teardown and remote departure."""

    async def test_disconnect_resets_local_side(self, paired, settle):
        host, guest = paired
        stream = guest.get_media_state().stream
        disconnected = MagicMock()
        guest.disconnected.subscribe(disconnected)

        guest.disconnect()

        assert guest.participant_count == 0
        assert guest.state is SessionState.CLOSED
        assert guest.get_remote_stream() is None
        assert guest.identity is None
        assert all(track.ended for track in stream.get_tracks())
        state = guest.get_media_state()
        assert (state.audio_enabled, state.video_enabled, state.stream) == (True, True, None)
        disconnected.assert_called_once()

    async def test_remote_departure_reopens_host(self, paired, settle):
        host, guest = paired
        peer_left = MagicMock()
        host.peer_disconnected.subscribe(peer_left)

        guest.disconnect()
        await settle()

        assert host.state is SessionState.OPEN
        assert host.participant_count == 1
        assert host.get_remote_stream() is None
        peer_left.assert_called_once()

    async def test_host_leaving_releases_guest(self, paired, settle):
        host, guest = paired

        host.disconnect()
        await settle()

        assert host.participant_count == 0
        assert guest.participant_count == 1
        assert guest.get_remote_stream() is None

    async def test_host_accepts_new_guest_after_departure(self, paired, make_orchestrator, settle):
        host, guest = paired
        guest.disconnect()
        await settle()

        newcomer = make_orchestrator()
        await newcomer.join_session(host.identity)
        await settle()

        assert host.participant_count == 2
        assert host.peer_id == newcomer.identity

    def test_disconnect_is_repeatable_from_unopened(self):
        orchestrator = SessionOrchestrator(InMemoryTransport(InMemoryBroker()), HeadlessMediaDevices())
        disconnected = MagicMock()
        orchestrator.disconnected.subscribe(disconnected)

        orchestrator.disconnect()
        orchestrator.disconnect()

        assert orchestrator.state is SessionState.UNOPENED
        assert orchestrator.participant_count == 0
        assert disconnected.call_count == 2

    async def test_identity_released_on_disconnect(self, make_orchestrator, broker):
        orchestrator = make_orchestrator()
        identity = await orchestrator.create_session()

        orchestrator.disconnect()

        assert identity not in broker.identities

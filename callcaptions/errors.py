"""
Error taxonomy.

- MediaAccessError: camera/microphone permission denied or no device. Fatal to
  starting a call; surfaced to the caller, never retried automatically.
- EndpointError / PeerConnectionError: transport negotiation failed. Surfaced to
  the caller, who decides between retry and falling back to join.
- RecognitionError: reported by the speech engine. Non-fatal; emitted as an event.
- TranslationFailure: one engine call failed. Recovered inside TranslationChain.
"""
from __future__ import annotations

from enum import Enum


class CallCaptionsError(Exception):
    """Base for all domain errors."""


class MediaAccessReason(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    DEVICE_NOT_FOUND = "device_not_found"


class MediaAccessError(CallCaptionsError):
    def __init__(self, reason: MediaAccessReason, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or "Failed to access camera/microphone. Please grant permissions.")


class EndpointErrorReason(str, Enum):
    IDENTITY_TAKEN = "identity_taken"
    UNREACHABLE = "unreachable"
    CLOSED = "closed"
    ALREADY_OPEN = "already_open"


class EndpointError(CallCaptionsError):
    """Local endpoint could not be opened under the requested identity."""

    def __init__(self, identity: str, reason: EndpointErrorReason, message: str | None = None) -> None:
        self.identity = identity
        self.reason = reason
        super().__init__(message or f"Endpoint {identity!r} failed to open: {reason.value}")

    @property
    def identity_taken(self) -> bool:
        return self.reason is EndpointErrorReason.IDENTITY_TAKEN


class PeerConnectionError(CallCaptionsError):
    """Data channel or media call to a remote identity could not be established."""

    def __init__(self, peer_id: str, message: str | None = None) -> None:
        self.peer_id = peer_id
        super().__init__(message or f"Could not connect to peer {peer_id!r}")


class RecognitionError(CallCaptionsError):
    """Speech engine reported an error; recognition may be restarted."""


class TranslationFailure(CallCaptionsError):
    """One translation engine call failed (network error or non-success status)."""

    def __init__(self, service: str, message: str, status_code: int | None = None) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")

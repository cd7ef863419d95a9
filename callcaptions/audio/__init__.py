"""Audio framing for streaming recognition: PCM feed and rolling window."""
from .feed import AudioFeed
from .pcm import pcm_bytes_to_float32, pcm_duration_seconds
from .window import RollingWindow

__all__ = ["AudioFeed", "RollingWindow", "pcm_bytes_to_float32", "pcm_duration_seconds"]

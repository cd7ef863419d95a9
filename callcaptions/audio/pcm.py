"""PCM helpers. Contract: signed int16, little-endian, mono."""
from __future__ import annotations

import numpy as np


def pcm_bytes_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """Convert PCM 16-bit mono bytes to float32 [-1.0, 1.0]."""
    samples = np.frombuffer(pcm_bytes, dtype=np.int16)
    return samples.astype(np.float32) / 32768.0


def pcm_duration_seconds(pcm_bytes: bytes, sample_rate: int) -> float:
    return len(pcm_bytes) / (sample_rate * 2)

"""PCM helpers for the capture input contract (signed int16, little-endian, interleaved)."""
from __future__ import annotations

import numpy as np


def bytes_per_ms(sample_rate: int, channels: int, sample_width: int = 2) -> float:
    return sample_rate * channels * sample_width / 1000.0


def pcm_duration_ms(num_bytes: int, sample_rate: int, channels: int, sample_width: int = 2) -> float:
    """Duration of num_bytes of interleaved PCM in milliseconds."""
    return num_bytes / bytes_per_ms(sample_rate, channels, sample_width)


def rms_int16(pcm_bytes: bytes) -> float:
    """RMS of int16 samples (for quiet-input logging). Trailing odd byte is ignored."""
    usable = len(pcm_bytes) - (len(pcm_bytes) % 2)
    if usable < 2:
        return 0.0
    samples = np.frombuffer(pcm_bytes[:usable], dtype=np.int16)
    return float(np.sqrt(np.mean(samples.astype(np.float32) ** 2)))

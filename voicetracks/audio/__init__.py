"""Audio helpers: PCM math for the capture contract."""
from .pcm import bytes_per_ms, pcm_duration_ms, rms_int16

__all__ = ["bytes_per_ms", "pcm_duration_ms", "rms_int16"]

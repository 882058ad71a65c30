"""Application configuration. Loads from env vars."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Input PCM contract: signed 16-bit little-endian, stereo, 48kHz
    SAMPLE_RATE: int = 48000
    SAMPLE_WIDTH: int = 2  # 16-bit
    CHANNELS: int = 2

    # Copy loop read size: 20ms @ 48kHz stereo = 960 samples * 2ch * 2 bytes
    CHUNK_BYTES: int = 3840

    # External encoder / stitcher
    FFMPEG_BINARY: str = "ffmpeg"
    OUTPUT_EXTENSION: str = "wav"
    OUTPUT_CODEC: str = "pcm_u8"
    OUTPUT_SAMPLE_RATE: int = 22050
    OUTPUT_CHANNELS: int = 2

    # Layout on disk: fragments, silence clips and manifests live in FRAGMENTS_DIR;
    # final per-user tracks in RECORDINGS_DIR.
    RECORDINGS_DIR: str = "Recordings"
    FRAGMENTS_DIR: str = "Recordings/Fragments"

    # Lines of encoder stdout/stderr kept per session for error reports
    DIAGNOSTIC_TAIL_LINES: int = 50

    # Quiet input warning (int16 RMS scale); 250 chunks = 5s of 20ms chunks
    QUIET_RMS_THRESHOLD: float = 100.0
    QUIET_CHUNKS_WARN: int = 250

    # Stitch users in parallel on finalize (no cross-user dependency)
    STITCH_CONCURRENTLY: bool = True
    # Pad every track with trailing silence up to the latest fragment end. Off: tracks end
    # at each user's own last fragment.
    PAD_TRACKS_TO_COMMON_END: bool = False

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path = also log to file (empty = console only).
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()

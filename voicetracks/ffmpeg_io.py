"""Shared helpers for building ffmpeg command lines."""

from __future__ import annotations

from voicetracks.config import Settings

DEFAULT_SAMPLE_FORMAT = "s16le"


def pcm_pipe_input_args(
    sample_rate: int,
    channels: int,
    *,
    sample_format: str = DEFAULT_SAMPLE_FORMAT,
) -> list[str]:
    """Return input arguments for piping raw PCM into ffmpeg on stdin.

    Options before ``-i`` apply to that input, so the raw format has to be
    declared here; stdin carries no header ffmpeg could probe.
    """

    return [
        "-f",
        sample_format,
        "-ar",
        str(sample_rate),
        "-ac",
        str(channels),
        "-i",
        "pipe:0",
    ]


def output_format_args(settings: Settings) -> list[str]:
    """Codec, rate and channel count shared by fragments and synthesized silence.

    Concatenation uses stream copy, which is only valid when every clip has the
    same format; both producers build their output args here.
    """

    return [
        "-acodec",
        settings.OUTPUT_CODEC,
        "-ar",
        str(settings.OUTPUT_SAMPLE_RATE),
        "-ac",
        str(settings.OUTPUT_CHANNELS),
    ]


def encoder_command(settings: Settings, output_path: str) -> list[str]:
    return [
        settings.FFMPEG_BINARY,
        "-hide_banner",
        "-y",
        *pcm_pipe_input_args(settings.SAMPLE_RATE, settings.CHANNELS),
        *output_format_args(settings),
        output_path,
    ]


def silence_command(settings: Settings, duration_ms: int, output_path: str) -> list[str]:
    layout = "stereo" if settings.OUTPUT_CHANNELS == 2 else "mono"
    return [
        settings.FFMPEG_BINARY,
        "-hide_banner",
        "-y",
        "-f",
        "lavfi",
        "-i",
        f"anullsrc=channel_layout={layout}:sample_rate={settings.OUTPUT_SAMPLE_RATE}",
        "-t",
        f"{duration_ms}ms",
        *output_format_args(settings),
        output_path,
    ]


def concat_command(settings: Settings, manifest_path: str, output_path: str) -> list[str]:
    return [
        settings.FFMPEG_BINARY,
        "-hide_banner",
        "-y",
        "-f",
        "concat",
        "-safe",
        "0",
        "-i",
        manifest_path,
        "-c",
        "copy",
        output_path,
    ]

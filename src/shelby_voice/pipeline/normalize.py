"""
Audio normalization: arbitrary input -> 16 kHz mono pcm_s16le WAV.

ffmpeg is the transcoder. When it is not installed the input is passed through
unchanged (degraded, non-fatal). When it fails, NormalizationError is raised and
`normalize_with_fallback` retries exactly once in pass-through mode.
"""

from __future__ import annotations

from dataclasses import dataclass

from shelby_voice.config import get_settings
from shelby_voice.errors import NormalizationError, ValidationError
from shelby_voice.utils.ffmpeg_safe import ffmpeg_available, run_ffmpeg_pipe
from shelby_voice.utils.log import logger

# ffmpeg can usually sniff the container; a hint helps for stream-y formats read from a pipe.
_MIME_INPUT_FORMATS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/ogg": "ogg",
    "audio/webm": "webm",
    "video/webm": "webm",
    "audio/flac": "flac",
    "audio/x-flac": "flac",
}


@dataclass(frozen=True, slots=True)
class NormalizedAudio:
    data: bytes
    sample_rate: int
    channels: int
    passthrough: bool
    fallback_reason: str | None = None


def _input_format(mime_type: str | None) -> str | None:
    m = str(mime_type or "").split(";", 1)[0].strip().lower()
    return _MIME_INPUT_FORMATS.get(m)


def build_ffmpeg_argv(*, ffmpeg_bin: str, sample_rate: int, mime_type: str | None) -> list[str]:
    argv = [str(ffmpeg_bin), "-nostdin", "-hide_banner", "-loglevel", "error"]
    fmt = _input_format(mime_type)
    if fmt:
        argv += ["-f", fmt]
    argv += [
        "-i",
        "pipe:0",
        "-ar",
        str(int(sample_rate)),
        "-ac",
        "1",
        "-f",
        "wav",
        "-acodec",
        "pcm_s16le",
        "pipe:1",
    ]
    return argv


def normalize_audio(
    data: bytes,
    mime_type: str = "audio/wav",
    *,
    passthrough: bool = False,
) -> NormalizedAudio:
    if not data:
        raise ValidationError("empty audio input", public_message="Audio file is empty")
    s = get_settings()
    sr = int(s.target_sample_rate)

    if passthrough:
        return NormalizedAudio(data=bytes(data), sample_rate=sr, channels=1, passthrough=True)

    if not ffmpeg_available(str(s.ffmpeg_bin)):
        logger.warning("normalize_ffmpeg_unavailable", ffmpeg_bin=str(s.ffmpeg_bin))
        return NormalizedAudio(
            data=bytes(data),
            sample_rate=sr,
            channels=1,
            passthrough=True,
            fallback_reason="ffmpeg_unavailable",
        )

    argv = build_ffmpeg_argv(ffmpeg_bin=str(s.ffmpeg_bin), sample_rate=sr, mime_type=mime_type)
    out = run_ffmpeg_pipe(argv, data, timeout_s=int(s.ffmpeg_timeout_s))
    logger.info(
        "normalize_done",
        mime_type=str(mime_type or ""),
        in_bytes=len(data),
        out_bytes=len(out),
        sample_rate=sr,
    )
    return NormalizedAudio(data=out, sample_rate=sr, channels=1, passthrough=False)


def normalize_with_fallback(data: bytes, mime_type: str = "audio/wav") -> NormalizedAudio:
    """
    Normalize, retrying once in pass-through mode if the transcoder fails.
    """
    try:
        return normalize_audio(data, mime_type)
    except NormalizationError as ex:
        if not bool(get_settings().normalize_passthrough_on_error):
            raise
        logger.warning(
            "normalize_failed_passthrough_retry",
            error=str(ex).splitlines()[0],
            detail=ex.detail,
        )
        res = normalize_audio(data, mime_type, passthrough=True)
        return NormalizedAudio(
            data=res.data,
            sample_rate=res.sample_rate,
            channels=res.channels,
            passthrough=True,
            fallback_reason="ffmpeg_failed",
        )

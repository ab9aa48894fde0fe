from __future__ import annotations

import io
import struct
import wave
from dataclasses import dataclass

from shelby_voice.errors import BundleAssemblyError


@dataclass(frozen=True, slots=True)
class WavInfo:
    channels: int
    sample_rate: int
    sample_width: int
    pcm: bytes


def parse_wav(data: bytes) -> WavInfo | None:
    """
    Parse a PCM RIFF/WAVE blob. Returns None when `data` is not a WAV.

    Tolerates streamed headers (ffmpeg writing to a pipe leaves the data-chunk
    size as 0 or 0xFFFFFFFF): in that case the data chunk runs to end of input.
    """
    b = bytes(data or b"")
    if len(b) < 12 or b[0:4] != b"RIFF" or b[8:12] != b"WAVE":
        return None
    pos = 12
    fmt: tuple[int, int, int, int] | None = None
    while pos + 8 <= len(b):
        cid = b[pos : pos + 4]
        (size,) = struct.unpack("<I", b[pos + 4 : pos + 8])
        body = pos + 8
        if cid == b"fmt ":
            if size < 16 or body + 16 > len(b):
                return None
            audio_format, channels, sample_rate, _byte_rate, _align, bits = struct.unpack(
                "<HHIIHH", b[body : body + 16]
            )
            fmt = (audio_format, channels, sample_rate, bits)
        elif cid == b"data":
            if fmt is None:
                return None
            end = len(b) if size in (0, 0xFFFFFFFF) else min(len(b), body + size)
            _af, channels, sample_rate, bits = fmt
            # wave only frames 8..32-bit samples at a positive rate
            if sample_rate <= 0 or not 1 <= bits // 8 <= 4:
                return None
            return WavInfo(
                channels=max(1, int(channels)),
                sample_rate=int(sample_rate),
                sample_width=max(1, int(bits) // 8),
                pcm=b[body:end],
            )
        pos = body + size + (size & 1)
    return None


def write_wav(pcm: bytes, *, sample_rate: int, channels: int = 1, sample_width: int = 2) -> bytes:
    buf = io.BytesIO()
    try:
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(int(channels))
            wf.setsampwidth(int(sample_width))
            wf.setframerate(int(sample_rate))
            wf.writeframes(bytes(pcm))
    except wave.Error as ex:
        raise BundleAssemblyError(
            f"cannot frame wav ({channels}ch, {sample_width}B, {sample_rate}Hz): {ex}",
            public_message="Invalid WAV audio parameters",
        ) from ex
    return buf.getvalue()

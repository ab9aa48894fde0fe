from __future__ import annotations

import shutil
import subprocess
from functools import lru_cache

from shelby_voice.errors import NormalizationError

_FORBIDDEN_FLAGS = {
    "-filter_script",
    "-filter_script:v",
    "-filter_script:a",
    "-stats_file",
}


class FFmpegError(NormalizationError):
    pass


def _validate_args(argv: list[str]) -> None:
    for a in argv:
        if a in _FORBIDDEN_FLAGS:
            raise FFmpegError(f"Forbidden ffmpeg flag: {a}")


def _tail(s: str, n: int = 4000) -> str:
    s = str(s or "")
    if len(s) <= n:
        return s
    return s[-n:]


@lru_cache(maxsize=8)
def ffmpeg_available(ffmpeg_bin: str = "ffmpeg") -> bool:
    """
    True when `ffmpeg_bin` resolves and answers `-version` with exit 0.
    Cached per binary; call `ffmpeg_available.cache_clear()` after changing PATH.
    """
    if shutil.which(str(ffmpeg_bin)) is None:
        return False
    try:
        p = subprocess.run(
            [str(ffmpeg_bin), "-version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=10,
            check=False,
        )
    except (OSError, subprocess.SubprocessError):
        return False
    return p.returncode == 0


def run_ffmpeg_pipe(argv: list[str], data: bytes, *, timeout_s: int | None = None) -> bytes:
    """
    Run ffmpeg with `data` on stdin and return stdout bytes.

    Any failure (spawn error, timeout, non-zero exit) raises FFmpegError whose
    `detail` holds the tail of ffmpeg's stderr.
    """
    _validate_args(argv)
    try:
        p = subprocess.run(
            argv,
            input=bytes(data),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout_s,
            check=False,
        )
    except subprocess.TimeoutExpired as ex:
        raise FFmpegError(
            f"ffmpeg timed out after {timeout_s}s", detail="timeout"
        ) from ex
    except OSError as ex:
        raise FFmpegError(f"ffmpeg spawn failed: {ex}", detail=str(ex)) from ex

    stderr = (p.stderr or b"").decode("utf-8", errors="replace")
    if p.returncode != 0:
        raise FFmpegError(
            f"ffmpeg failed (exit={p.returncode})\nstderr_tail={_tail(stderr)}",
            detail=_tail(stderr),
        )
    if not p.stdout:
        raise FFmpegError("ffmpeg produced no output", detail=_tail(stderr))
    return bytes(p.stdout)

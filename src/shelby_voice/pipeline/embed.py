"""
Voice embeddings: bytes -> fixed-size float vector.

The default `DigestEmbedder` is a placeholder: a deterministic vector derived from
the SHA-256 of the normalized audio. It is stable across runs, which keeps bundle
identity reproducible, but it carries no acoustic meaning. `ResemblyzerEmbedder`
plugs a real speaker encoder into the same interface.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from shelby_voice.config import get_settings
from shelby_voice.errors import EmbeddingError
from shelby_voice.pipeline.wavio import parse_wav
from shelby_voice.utils.log import logger

# element format tag -> numpy dtype (little-endian on disk)
FORMATS: dict[str, str] = {
    "float32": "<f4",
    "float64": "<f8",
}


def itemsize(fmt: str) -> int:
    dt = FORMATS.get(str(fmt or ""))
    if dt is None:
        raise KeyError(fmt)
    return int(np.dtype(dt).itemsize)


@dataclass(frozen=True, slots=True)
class Embedding:
    data: bytes
    size: int
    format: str
    provider: str = "digest"

    def values(self) -> np.ndarray:
        return np.frombuffer(self.data, dtype=FORMATS[self.format])

    @classmethod
    def from_values(cls, values: np.ndarray, *, fmt: str = "float32", provider: str) -> Embedding:
        arr = np.asarray(values, dtype=FORMATS[fmt]).reshape(-1)
        return cls(data=arr.tobytes(), size=int(arr.size), format=fmt, provider=provider)


class Embedder(Protocol):
    name: str

    def embed(self, pcm: bytes) -> Embedding: ...


class DigestEmbedder:
    name = "digest"

    def __init__(self, dim: int = 256) -> None:
        if int(dim) <= 0:
            raise ValueError("dim must be positive")
        self.dim = int(dim)

    def embed(self, pcm: bytes) -> Embedding:
        if not pcm:
            raise EmbeddingError("cannot embed empty audio", public_message="Audio is empty")
        digest = np.frombuffer(hashlib.sha256(bytes(pcm)).digest(), dtype=np.uint8)
        idx = np.arange(self.dim) % digest.size
        # map each byte to [-1, 1]
        vec = (digest[idx].astype(np.float32) / 255.0 - 0.5) * 2.0
        return Embedding.from_values(vec, fmt="float32", provider=self.name)


class ResemblyzerEmbedder:
    """
    Speaker embedding via resemblyzer's GE2E encoder (256-dim, float32).

    Requires the `embeddings` extra. The encoder is loaded lazily on first use.
    """

    name = "resemblyzer"

    def __init__(self, device: str = "cpu") -> None:
        self.device = str(device)
        self._encoder = None

    def _get_encoder(self):
        if self._encoder is None:
            try:
                from resemblyzer import VoiceEncoder  # type: ignore
            except ImportError as ex:
                raise EmbeddingError(
                    "resemblyzer is not installed (pip install 'shelby-voice[embeddings]')",
                    public_message="Embedding model unavailable",
                ) from ex
            self._encoder = VoiceEncoder(device=self.device)
        return self._encoder

    def embed(self, pcm: bytes) -> Embedding:
        info = parse_wav(pcm)
        if info is None or info.sample_width != 2 or not info.pcm:
            raise EmbeddingError(
                "resemblyzer needs 16-bit PCM WAV input",
                public_message="Audio must be a 16-bit PCM WAV",
            )
        encoder = self._get_encoder()
        from resemblyzer import preprocess_wav  # type: ignore

        samples = np.frombuffer(info.pcm[: len(info.pcm) - (len(info.pcm) % 2)], dtype="<i2")
        if info.channels > 1:
            samples = samples[: samples.size - (samples.size % info.channels)]
            samples = samples.reshape(-1, info.channels)[:, 0]
        wav = samples.astype(np.float32) / 32768.0
        try:
            processed = preprocess_wav(wav, source_sr=info.sample_rate)
            vec = encoder.embed_utterance(processed)
        except Exception as ex:
            raise EmbeddingError(f"resemblyzer failed: {ex}") from ex
        return Embedding.from_values(vec, fmt="float32", provider=self.name)


def get_embedder(name: str | None = None) -> Embedder:
    s = get_settings()
    n = str(name or s.embedder or "digest").strip().lower()
    if n == "resemblyzer":
        return ResemblyzerEmbedder()
    if n != "digest":
        logger.warning("embedder_invalid", value=n)
    return DigestEmbedder(dim=int(s.embedding_dim))


def generate_embedding(pcm: bytes, *, embedder: Embedder | None = None) -> Embedding:
    e = embedder or get_embedder()
    emb = e.embed(pcm)
    logger.info("embedding_done", provider=emb.provider, size=emb.size, format=emb.format)
    return emb

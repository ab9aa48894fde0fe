"""
Voice model bundle assembly.

A bundle is a set of named parts stored under one URI:

  embedding.bin   raw little-endian vector              (required)
  config.json     model/audio/embedding descriptor      (required)
  meta.json       display/ownership descriptor          (expected, optional on read)
  preview.wav     first few seconds of the recording    (optional)
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from shelby_voice.config import get_settings
from shelby_voice.errors import BundleAssemblyError
from shelby_voice.pipeline.embed import FORMATS, Embedding, itemsize
from shelby_voice.pipeline.wavio import parse_wav, write_wav

EMBEDDING_FILE = "embedding.bin"
CONFIG_FILE = "config.json"
META_FILE = "meta.json"
PREVIEW_FILE = "preview.wav"

REQUIRED_PARTS = (EMBEDDING_FILE, CONFIG_FILE)

BYTES_PER_SAMPLE = 2


@dataclass(frozen=True, slots=True)
class VoiceBundle:
    files: dict[str, bytes]
    config: dict[str, Any]
    meta: dict[str, Any]
    preview: bytes | None = field(default=None, repr=False)

    @property
    def total_size(self) -> int:
        return sum(len(v) for v in self.files.values())


def _dump(obj: dict[str, Any]) -> bytes:
    return json.dumps(obj, indent=2).encode("utf-8")


def extract_preview(
    audio: bytes,
    *,
    seconds: int | None = None,
    sample_rate: int | None = None,
    bytes_per_sample: int = BYTES_PER_SAMPLE,
) -> bytes | None:
    """
    First `seconds` of audio, or None if the audio is not longer than that.

    The window is `sample_rate * bytes_per_sample * seconds` bytes. WAV input is
    re-framed so the preview is itself a playable WAV; anything else is sliced.
    """
    s = get_settings()
    sec = int(seconds if seconds is not None else s.preview_seconds)
    sr = int(sample_rate if sample_rate is not None else s.target_sample_rate)
    if sec <= 0 or not audio:
        return None
    window = sr * int(bytes_per_sample) * sec

    info = parse_wav(audio)
    if info is not None:
        frame = info.channels * info.sample_width
        win = info.sample_rate * frame * sec
        if len(info.pcm) <= win:
            return None
        return write_wav(
            info.pcm[:win],
            sample_rate=info.sample_rate,
            channels=info.channels,
            sample_width=info.sample_width,
        )

    if len(audio) <= window:
        return None
    return bytes(audio[:window])


def _check_embedding(embedding: Embedding | None) -> Embedding:
    if embedding is None or not embedding.data:
        raise BundleAssemblyError("embedding is required", public_message="Embedding is missing")
    if embedding.format not in FORMATS:
        raise BundleAssemblyError(
            f"unknown embedding format {embedding.format!r}",
            public_message="Unsupported embedding format",
        )
    expected = int(embedding.size) * itemsize(embedding.format)
    if int(embedding.size) <= 0 or len(embedding.data) != expected:
        raise BundleAssemblyError(
            f"embedding size mismatch: size={embedding.size} format={embedding.format} "
            f"bytes={len(embedding.data)} expected={expected}",
            public_message="Embedding size does not match its declared dimension",
        )
    return embedding


def build_config(embedding: Embedding, *, sample_rate: int | None = None) -> dict[str, Any]:
    s = get_settings()
    return {
        "modelVersion": str(s.model_version),
        "sampleRate": int(sample_rate if sample_rate is not None else s.target_sample_rate),
        "channels": 1,
        "format": "wav",
        "embeddingSize": int(embedding.size),
        "embeddingFormat": str(embedding.format),
        "embeddingProvider": str(embedding.provider),
    }


def check_config(config: Mapping[str, Any] | None, *, embedding_bytes: int) -> dict[str, Any]:
    """
    Validate a config descriptor against the embedding bytes actually present.
    """
    if not isinstance(config, Mapping) or not config:
        raise BundleAssemblyError("config is required", public_message="Config is missing")
    try:
        size = int(config["embeddingSize"])
        fmt = str(config["embeddingFormat"])
    except (KeyError, TypeError, ValueError) as ex:
        raise BundleAssemblyError(
            f"config missing embedding descriptor: {ex}",
            public_message="Config must declare embeddingSize and embeddingFormat",
        ) from ex
    if fmt not in FORMATS:
        raise BundleAssemblyError(
            f"unknown embedding format {fmt!r}", public_message="Unsupported embedding format"
        )
    if size <= 0 or size * itemsize(fmt) != int(embedding_bytes):
        raise BundleAssemblyError(
            f"config.embeddingSize={size} ({fmt}) does not match {embedding_bytes} embedding bytes",
            public_message="Config embeddingSize does not match the embedding",
        )
    return dict(config)


def assemble_bundle(
    *,
    owner: str,
    voice_id: str,
    name: str,
    normalized_audio: bytes,
    embedding: Embedding | None,
    description: str | None = None,
    preview: bytes | None = None,
    config: Mapping[str, Any] | None = None,
    sample_rate: int | None = None,
    created_at_ms: int | None = None,
) -> VoiceBundle:
    """
    Package embedding, config, meta and optional preview into bundle parts.

    Mismatched embedding/config sizes fail; nothing is truncated or padded.
    """
    emb = _check_embedding(embedding)
    for label, value in (("name", name), ("owner", owner), ("voice_id", voice_id)):
        if not str(value or "").strip():
            raise BundleAssemblyError(
                f"{label} is required", public_message=f"{label} is required"
            )

    cfg = dict(config) if config is not None else build_config(emb, sample_rate=sample_rate)
    check_config(cfg, embedding_bytes=len(emb.data))
    if str(cfg.get("embeddingFormat")) != emb.format or int(cfg["embeddingSize"]) != emb.size:
        raise BundleAssemblyError(
            "config embedding descriptor does not match the produced embedding",
            public_message="Config embeddingSize does not match the embedding",
        )

    meta = {
        "name": str(name).strip(),
        "description": str(description or ""),
        "owner": str(owner).strip(),
        "voiceId": str(voice_id).strip(),
        "createdAt": int(created_at_ms if created_at_ms is not None else time.time() * 1000),
        "modelVersion": str(cfg.get("modelVersion") or get_settings().model_version),
    }

    if preview is None and normalized_audio:
        preview = extract_preview(normalized_audio, sample_rate=sample_rate)

    files: dict[str, bytes] = {
        EMBEDDING_FILE: emb.data,
        CONFIG_FILE: _dump(cfg),
        META_FILE: _dump(meta),
    }
    if preview:
        files[PREVIEW_FILE] = bytes(preview)
    return VoiceBundle(files=files, config=cfg, meta=meta, preview=preview or None)


def load_json_part(data: bytes | None, *, part: str) -> dict[str, Any] | None:
    if data is None:
        return None
    try:
        obj = json.loads(bytes(data).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as ex:
        raise BundleAssemblyError(
            f"{part} is not valid JSON: {ex}", public_message=f"{part} is not valid JSON"
        ) from ex
    if not isinstance(obj, dict):
        raise BundleAssemblyError(
            f"{part} must be a JSON object", public_message=f"{part} must be a JSON object"
        )
    return obj


def validate_bundle_files(files: Mapping[str, bytes]) -> dict[str, Any]:
    """
    Check a part map for the required parts and config/embedding consistency.
    Returns the parsed config.
    """
    missing = [p for p in REQUIRED_PARTS if not files.get(p)]
    if missing:
        raise BundleAssemblyError(
            f"bundle missing required parts: {', '.join(missing)}",
            public_message=f"Bundle is missing required parts: {', '.join(missing)}",
        )
    cfg = load_json_part(files[CONFIG_FILE], part=CONFIG_FILE)
    return check_config(cfg, embedding_bytes=len(files[EMBEDDING_FILE]))

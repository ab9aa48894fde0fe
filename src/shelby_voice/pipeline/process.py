from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from shelby_voice.config import get_settings
from shelby_voice.pipeline.bundle import VoiceBundle, assemble_bundle, validate_bundle_files
from shelby_voice.pipeline.embed import Embedder, generate_embedding
from shelby_voice.pipeline.normalize import normalize_with_fallback
from shelby_voice.storage.gateway import PutResult, StorageGateway
from shelby_voice.uri import StorageURI
from shelby_voice.utils.log import logger


@dataclass(frozen=True, slots=True)
class ProcessResult:
    bundle: VoiceBundle
    put: PutResult | None
    passthrough: bool
    fallback_reason: str | None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": True,
            "bundle": {"config": self.bundle.config, "meta": self.bundle.meta},
            "normalized": not self.passthrough,
            "parts": sorted(self.bundle.files.keys()),
        }
        if self.put is not None:
            out.update(self.put.to_dict())
        if self.fallback_reason:
            out["fallback_reason"] = self.fallback_reason
        return out


def process_voice_model(
    audio: bytes,
    *,
    mime_type: str,
    name: str,
    owner: str,
    voice_id: str,
    description: str | None = None,
    embedder: Embedder | None = None,
) -> tuple[VoiceBundle, bool, str | None]:
    """
    Recording -> bundle parts (normalize, embed, extract preview, assemble).

    Returns (bundle, passthrough, fallback_reason).
    """
    norm = normalize_with_fallback(audio, mime_type)
    emb = generate_embedding(norm.data, embedder=embedder)
    bundle = assemble_bundle(
        owner=owner,
        voice_id=voice_id,
        name=name,
        description=description,
        normalized_audio=norm.data,
        embedding=emb,
        sample_rate=norm.sample_rate,
    )
    validate_bundle_files(bundle.files)
    logger.info(
        "voice_model_processed",
        owner=str(owner),
        voice_id=str(voice_id),
        parts=sorted(bundle.files.keys()),
        total_size=bundle.total_size,
        passthrough=norm.passthrough,
    )
    return bundle, norm.passthrough, norm.fallback_reason


def process_and_store(
    gateway: StorageGateway,
    audio: bytes,
    *,
    mime_type: str,
    name: str,
    owner: str,
    voice_id: str,
    description: str | None = None,
    namespace: str | None = None,
    embedder: Embedder | None = None,
) -> ProcessResult:
    """
    Full write path: process the recording and publish the bundle under
    shelby://<owner>/<namespace>/<voice_id>.
    """
    ns = str(namespace or get_settings().default_namespace)
    # fail on bad segments before doing any audio work
    StorageURI.build(owner, ns, voice_id)
    bundle, passthrough, reason = process_voice_model(
        audio,
        mime_type=mime_type,
        name=name,
        owner=owner,
        voice_id=voice_id,
        description=description,
        embedder=embedder,
    )
    put = gateway.put(owner, ns, voice_id, bundle.files)
    return ProcessResult(bundle=bundle, put=put, passthrough=passthrough, fallback_reason=reason)

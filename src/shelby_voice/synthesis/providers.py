"""
External text-to-speech providers.

A provider turns (voice_id, text) into audio bytes and can register a voice from
reference audio. Model references of the form ``<provider>:<voice_id>`` are routed
by the prefixes in PROVIDER_PREFIXES.
"""

from __future__ import annotations

import time
from typing import Any, Protocol, runtime_checkable

import httpx

from shelby_voice.config import get_settings
from shelby_voice.errors import UpstreamProviderError, ValidationError
from shelby_voice.utils.log import logger

ELEVENLABS = "elevenlabs"

# reference prefix -> provider name
PROVIDER_PREFIXES: dict[str, str] = {
    "eleven": ELEVENLABS,
    "elevenlabs": ELEVENLABS,
}


@runtime_checkable
class SynthesisProvider(Protocol):
    name: str
    content_type: str

    def synthesize(self, voice_id: str, text: str, *, similarity_boost: float | None = None) -> bytes: ...

    def register_voice(
        self, audio: bytes, name: str, *, description: str | None = None, filename: str = "preview.wav"
    ) -> str: ...

    def delete_voice(self, voice_id: str) -> None: ...

    def list_voices(self) -> list[dict[str, Any]]: ...


def _detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:2000]
    if isinstance(data, dict) and "detail" in data:
        d = data["detail"]
        if isinstance(d, dict):
            return str(d.get("message") or d.get("status") or d)
        return str(d)
    return str(data)[:2000]


class ElevenLabsProvider:
    name = ELEVENLABS
    content_type = "audio/mpeg"

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = "https://api.elevenlabs.io/v1",
        model_id: str = "eleven_multilingual_v2",
        stability: float = 0.5,
        similarity_boost: float = 0.75,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key = str(api_key or "").strip()
        self.base_url = str(base_url).rstrip("/")
        self.model_id = str(model_id)
        self.stability = float(stability)
        self.similarity_boost = float(similarity_boost)
        self._client = httpx.Client(base_url=self.base_url, timeout=float(timeout), transport=transport)

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def close(self) -> None:
        self._client.close()

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise UpstreamProviderError(
                "ELEVENLABS_API_KEY is not set",
                public_message="ElevenLabs API key not configured",
            )
        return {"xi-api-key": self._api_key}

    def _request(self, method: str, path: str, *, op: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        t0 = time.perf_counter()
        try:
            resp = self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as ex:
            logger.warning("provider_request_failed", provider=self.name, op=op, error=str(ex))
            raise UpstreamProviderError(
                f"elevenlabs {op} failed: {ex}",
                detail=str(ex),
                public_message="Speech provider unreachable",
            ) from ex
        logger.info(
            "provider_request",
            provider=self.name,
            op=op,
            status=resp.status_code,
            wall_time_s=round(time.perf_counter() - t0, 3),
        )
        if not resp.is_success:
            detail = _detail(resp)
            raise UpstreamProviderError(
                f"elevenlabs {op} returned {resp.status_code}: {detail}",
                status_code=resp.status_code,
                detail=detail,
                public_message=f"Speech provider rejected the request: {detail}",
            )
        return resp

    def synthesize(self, voice_id: str, text: str, *, similarity_boost: float | None = None) -> bytes:
        if not str(text or "").strip():
            raise ValidationError("text is required", public_message="Text is required")
        body = {
            "text": str(text),
            "model_id": self.model_id,
            "voice_settings": {
                "stability": self.stability,
                "similarity_boost": float(
                    self.similarity_boost if similarity_boost is None else similarity_boost
                ),
            },
        }
        resp = self._request(
            "POST",
            f"/text-to-speech/{voice_id}",
            op="synthesize",
            json=body,
            headers={"Accept": self.content_type},
        )
        return resp.content

    def register_voice(
        self, audio: bytes, name: str, *, description: str | None = None, filename: str = "preview.wav"
    ) -> str:
        if not audio:
            raise ValidationError("reference audio is empty", public_message="Audio file is required")
        data = {"name": str(name)}
        if description:
            data["description"] = str(description)
        resp = self._request(
            "POST",
            "/voices/add",
            op="register_voice",
            data=data,
            files=[("files", (filename, bytes(audio), "audio/wav"))],
        )
        try:
            voice_id = str(resp.json().get("voice_id") or "")
        except (ValueError, AttributeError):
            voice_id = ""
        if not voice_id:
            raise UpstreamProviderError(
                "elevenlabs register_voice returned no voice_id",
                status_code=resp.status_code,
                detail=resp.text[:2000],
            )
        return voice_id

    def delete_voice(self, voice_id: str) -> None:
        self._request("DELETE", f"/voices/{voice_id}", op="delete_voice")

    def list_voices(self) -> list[dict[str, Any]]:
        resp = self._request("GET", "/voices", op="list_voices")
        try:
            voices = resp.json().get("voices")
        except (ValueError, AttributeError):
            voices = None
        return list(voices) if isinstance(voices, list) else []


def build_providers() -> dict[str, SynthesisProvider]:
    s = get_settings()
    key = s.secret.elevenlabs_api_key.get_secret_value() if s.secret.elevenlabs_api_key else None
    return {
        ELEVENLABS: ElevenLabsProvider(
            key,
            base_url=str(s.elevenlabs_base_url),
            model_id=str(s.tts_model_id),
            stability=float(s.tts_stability),
            similarity_boost=float(s.tts_similarity_boost),
            timeout=float(s.tts_timeout_s),
        )
    }


def resolve_provider_ref(model_ref: str) -> tuple[str, str] | None:
    """
    Split ``<prefix>:<voice_id>`` into (provider name, voice id).

    Returns None when the prefix is not a known provider.
    """
    ref = str(model_ref or "")
    if ":" not in ref or "://" in ref:
        return None
    prefix, voice_id = ref.split(":", 1)
    provider = PROVIDER_PREFIXES.get(prefix.strip().lower())
    if not provider:
        return None
    if not voice_id.strip():
        raise ValidationError(
            f"empty voice id in {ref!r}", public_message="Voice id is required"
        )
    return provider, voice_id.strip()

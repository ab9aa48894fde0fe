"""
Resolve a model reference plus text into synthesized audio.

  shelby://<account>/<namespace>/<id>  access check -> bundle read -> strategy chain
  <provider>:<voice_id>                direct provider call, no access control
  anything else                        UnsupportedReferenceError (no network)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from shelby_voice.config import get_settings
from shelby_voice.errors import (
    AccessDeniedError,
    UnsupportedReferenceError,
    ValidationError,
)
from shelby_voice.security.access import EntitlementOracle, build_oracle, verify_access
from shelby_voice.storage.gateway import StorageGateway
from shelby_voice.synthesis.chain import (
    DefaultVoiceStrategy,
    SynthesisRequest,
    SynthesisStrategy,
    TransientVoiceStrategy,
    run_chain,
)
from shelby_voice.synthesis.providers import (
    ELEVENLABS,
    SynthesisProvider,
    build_providers,
    resolve_provider_ref,
)
from shelby_voice.uri import PREFIX, StorageURI
from shelby_voice.utils.log import logger


@dataclass(frozen=True, slots=True)
class SynthesisResult:
    audio: bytes = field(repr=False)
    content_type: str
    provider: str
    voice_id: str
    strategy: str
    fallback_reason: str | None = None

    def headers(self) -> dict[str, str]:
        out = {"X-Synthesis-Strategy": self.strategy, "X-Synthesis-Provider": self.provider}
        if self.fallback_reason:
            out["X-Synthesis-Fallback"] = "1"
        return out


class SynthesisDispatcher:
    def __init__(
        self,
        gateway: StorageGateway,
        oracle: EntitlementOracle,
        providers: Mapping[str, SynthesisProvider],
        *,
        default_voice_id: str,
        gateway_provider: str = ELEVENLABS,
        clone_similarity_boost: float = 0.85,
        default_similarity_boost: float | None = None,
        strategies: Sequence[SynthesisStrategy] | None = None,
    ) -> None:
        self.gateway = gateway
        self.oracle = oracle
        self.providers = dict(providers)
        self.gateway_provider = str(gateway_provider)
        self.strategies: list[SynthesisStrategy] = list(
            strategies
            if strategies is not None
            else [
                TransientVoiceStrategy(similarity_boost=clone_similarity_boost),
                DefaultVoiceStrategy(default_voice_id, similarity_boost=default_similarity_boost),
            ]
        )

    def _provider(self, name: str) -> SynthesisProvider:
        p = self.providers.get(name)
        if p is None:
            raise UnsupportedReferenceError(
                f"provider {name!r} is not configured",
                public_message=f"Unsupported provider: {name}",
            )
        return p

    def synthesize(
        self, model_ref: str, text: str, requester_account: str | None = None
    ) -> SynthesisResult:
        if not str(text or "").strip():
            raise ValidationError("text is required", public_message="Text is required")
        ref = str(model_ref or "").strip()
        if not ref:
            raise ValidationError("model reference is required", public_message="Model URI is required")

        if ref.startswith(PREFIX):
            return self._synthesize_gateway(ref, text, requester_account)

        direct = resolve_provider_ref(ref)
        if direct is not None:
            provider_name, voice_id = direct
            return self.synthesize_direct(provider_name, voice_id, text)

        raise UnsupportedReferenceError(
            f"unsupported model reference: {ref!r}",
            public_message="Unsupported model URI format",
        )

    def synthesize_direct(self, provider_name: str, voice_id: str, text: str) -> SynthesisResult:
        provider = self._provider(provider_name)
        audio = provider.synthesize(voice_id, text)
        logger.info("synthesis_direct", provider=provider_name, voice_id=voice_id, bytes=len(audio))
        return SynthesisResult(
            audio=audio,
            content_type=provider.content_type,
            provider=provider_name,
            voice_id=voice_id,
            strategy="direct",
        )

    def _synthesize_gateway(
        self, ref: str, text: str, requester_account: str | None
    ) -> SynthesisResult:
        uri = StorageURI.parse(ref)
        requester = str(requester_account or "").strip()
        if not requester:
            raise ValidationError(
                "requester account is required for storage models",
                public_message="Requester account is required",
            )
        if not verify_access(uri, requester, oracle=self.oracle):
            logger.warning("synthesis_access_denied", uri=str(uri), requester=requester)
            raise AccessDeniedError(
                f"{requester} has no entitlement for {uri}",
                public_message="Access denied. Purchase required.",
            )
        bundle = self.gateway.read_bundle(uri, include_preview=True)
        provider = self._provider(self.gateway_provider)
        result = run_chain(
            self.strategies, SynthesisRequest(text=str(text), provider=provider, bundle=bundle)
        )
        return SynthesisResult(
            audio=result.output.audio,
            content_type=provider.content_type,
            provider=self.gateway_provider,
            voice_id=result.output.voice_id,
            strategy=result.output.strategy,
            fallback_reason=result.fallback_reason,
        )

    def describe(self) -> dict[str, Any]:
        return {
            "gateway_provider": self.gateway_provider,
            "providers": sorted(self.providers),
            "strategies": [s.name for s in self.strategies],
            "oracle": str(getattr(self.oracle, "name", type(self.oracle).__name__)),
        }


def build_dispatcher(
    gateway: StorageGateway,
    *,
    oracle: EntitlementOracle | None = None,
    providers: Mapping[str, SynthesisProvider] | None = None,
) -> SynthesisDispatcher:
    s = get_settings()
    return SynthesisDispatcher(
        gateway,
        oracle if oracle is not None else build_oracle(),
        providers if providers is not None else build_providers(),
        default_voice_id=str(s.tts_default_voice_id),
        clone_similarity_boost=float(s.tts_clone_similarity_boost),
        default_similarity_boost=float(s.tts_similarity_boost),
    )

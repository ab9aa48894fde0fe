"""
Ordered synthesis strategies.

Strategies are tried in order and the first one that returns audio wins; nothing
after it runs. A strategy that does not apply (e.g. no preview clip) is skipped
without touching the provider. Failures are kept as the fallback reason for the
next step; if the last applicable step fails the chain raises SynthesisError.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from shelby_voice.errors import SynthesisError, UpstreamProviderError
from shelby_voice.storage.gateway import BundleParts
from shelby_voice.synthesis.providers import SynthesisProvider
from shelby_voice.utils.log import logger


@dataclass(frozen=True, slots=True)
class SynthesisRequest:
    text: str
    provider: SynthesisProvider
    bundle: BundleParts | None = None


@dataclass(frozen=True, slots=True)
class StrategyOutput:
    audio: bytes = field(repr=False)
    voice_id: str
    strategy: str


class SynthesisStrategy(Protocol):
    name: str

    def applies(self, req: SynthesisRequest) -> bool: ...

    def run(self, req: SynthesisRequest) -> StrategyOutput: ...


class TransientVoiceStrategy:
    """
    Register a short-lived voice from the bundle's preview clip, speak with it,
    then delete the registration.
    """

    name = "transient_voice"

    def __init__(self, *, similarity_boost: float = 0.85, name_prefix: str = "shelby-voice") -> None:
        self.similarity_boost = float(similarity_boost)
        self.name_prefix = str(name_prefix)

    def applies(self, req: SynthesisRequest) -> bool:
        return bool(req.bundle is not None and req.bundle.has_preview)

    def run(self, req: SynthesisRequest) -> StrategyOutput:
        if req.bundle is None or not req.bundle.preview:
            raise ValueError("transient voice needs a bundle with a preview clip")
        description = None
        if req.bundle.meta:
            description = req.bundle.meta.get("description") or None
        voice_id = req.provider.register_voice(
            req.bundle.preview,
            f"{self.name_prefix}-{int(time.time() * 1000)}",
            description=description,
        )
        logger.info("transient_voice_registered", voice_id=voice_id, uri=str(req.bundle.uri))
        try:
            audio = req.provider.synthesize(voice_id, req.text, similarity_boost=self.similarity_boost)
        finally:
            self._release(req.provider, voice_id)
        return StrategyOutput(audio=audio, voice_id=voice_id, strategy=self.name)

    @staticmethod
    def _release(provider: SynthesisProvider, voice_id: str) -> None:
        try:
            provider.delete_voice(voice_id)
        except UpstreamProviderError as ex:
            logger.warning("transient_voice_delete_failed", voice_id=voice_id, error=str(ex))


class DefaultVoiceStrategy:
    name = "default_voice"

    def __init__(self, voice_id: str, *, similarity_boost: float | None = None) -> None:
        self.voice_id = str(voice_id)
        self.similarity_boost = similarity_boost

    def applies(self, req: SynthesisRequest) -> bool:
        return True

    def run(self, req: SynthesisRequest) -> StrategyOutput:
        audio = req.provider.synthesize(self.voice_id, req.text, similarity_boost=self.similarity_boost)
        return StrategyOutput(audio=audio, voice_id=self.voice_id, strategy=self.name)


@dataclass(frozen=True, slots=True)
class ChainResult:
    output: StrategyOutput
    fallback_reason: str | None
    attempted: tuple[str, ...]


def run_chain(strategies: Sequence[SynthesisStrategy], req: SynthesisRequest) -> ChainResult:
    attempted: list[str] = []
    reason: str | None = None
    last: UpstreamProviderError | None = None
    for strat in strategies:
        if not strat.applies(req):
            logger.info("synthesis_strategy_skipped", strategy=strat.name)
            continue
        attempted.append(strat.name)
        try:
            out = strat.run(req)
        except UpstreamProviderError as ex:
            reason = f"{strat.name}: {ex.detail or ex}"
            last = ex
            logger.warning(
                "synthesis_strategy_failed",
                strategy=strat.name,
                status=ex.status_code,
                error=str(ex),
            )
            continue
        if not out.audio:
            reason = f"{strat.name}: empty audio"
            last = UpstreamProviderError(f"{strat.name} returned no audio")
            logger.warning("synthesis_strategy_empty", strategy=strat.name)
            continue
        logger.info(
            "synthesis_strategy_ok",
            strategy=strat.name,
            voice_id=out.voice_id,
            bytes=len(out.audio),
            fallback_reason=reason,
        )
        return ChainResult(output=out, fallback_reason=reason, attempted=tuple(attempted))

    detail = last.detail if last is not None else ""
    raise SynthesisError(
        f"all synthesis strategies failed ({', '.join(attempted) or 'none applicable'}): {last}",
        status_code=last.status_code if last is not None else None,
        detail=detail,
        public_message=f"Speech synthesis failed: {detail}" if detail else "Speech synthesis failed",
    )

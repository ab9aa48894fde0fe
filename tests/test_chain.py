from __future__ import annotations

import pytest

from shelby_voice.errors import SynthesisError
from shelby_voice.storage.gateway import BundleParts
from shelby_voice.synthesis.chain import (
    DefaultVoiceStrategy,
    StrategyOutput,
    SynthesisRequest,
    TransientVoiceStrategy,
    run_chain,
)
from shelby_voice.uri import StorageURI
from tests._helpers.fakes import FakeProvider

DEFAULT = "default-voice"


def _bundle(preview: bytes | None) -> BundleParts:
    return BundleParts(
        uri=StorageURI.parse("shelby://0xabc/voices/v1"),
        embedding=b"\x00" * 8,
        config={"embeddingSize": 2, "embeddingFormat": "float32"},
        meta={"name": "N", "description": "warm"},
        preview=preview,
    )


def _chain() -> list:
    return [TransientVoiceStrategy(), DefaultVoiceStrategy(DEFAULT)]


def test_no_preview_skips_registration() -> None:
    p = FakeProvider()
    res = run_chain(_chain(), SynthesisRequest(text="hi", provider=p, bundle=_bundle(None)))
    assert res.output.strategy == "default_voice"
    assert res.output.voice_id == DEFAULT
    assert p.ops() == ["synthesize"]
    assert res.fallback_reason is None
    assert res.attempted == ("default_voice",)


def test_preview_uses_transient_voice_and_releases_it() -> None:
    p = FakeProvider()
    res = run_chain(_chain(), SynthesisRequest(text="hi", provider=p, bundle=_bundle(b"WAV")))
    assert res.output.strategy == "transient_voice"
    assert res.output.audio == b"audio:transient-1:hi"
    assert p.ops() == ["register_voice", "synthesize", "delete_voice"]


def test_registration_failure_falls_back_to_default() -> None:
    p = FakeProvider(fail_register=True)
    res = run_chain(_chain(), SynthesisRequest(text="hi", provider=p, bundle=_bundle(b"WAV")))
    assert res.output.strategy == "default_voice"
    assert res.output.audio == b"audio:default-voice:hi"
    assert res.fallback_reason and "bad sample" in res.fallback_reason
    assert p.ops() == ["register_voice", "synthesize"]


def test_transient_synthesis_failure_still_releases_voice() -> None:
    p = FakeProvider(fail_synthesize_for={"transient-1"})
    res = run_chain(_chain(), SynthesisRequest(text="hi", provider=p, bundle=_bundle(b"WAV")))
    assert res.output.strategy == "default_voice"
    assert p.ops() == ["register_voice", "synthesize", "delete_voice", "synthesize"]


def test_release_failure_does_not_discard_audio() -> None:
    p = FakeProvider(fail_delete=True)
    res = run_chain(_chain(), SynthesisRequest(text="hi", provider=p, bundle=_bundle(b"WAV")))
    assert res.output.strategy == "transient_voice"
    assert "synthesize" not in p.ops()[3:]


def test_default_failure_is_fatal_with_detail() -> None:
    p = FakeProvider(fail_register=True, fail_synthesize_for={DEFAULT})
    with pytest.raises(SynthesisError) as ei:
        run_chain(_chain(), SynthesisRequest(text="hi", provider=p, bundle=_bundle(b"WAV")))
    assert ei.value.detail == "voice rejected"
    assert ei.value.status_code == 500


def test_first_success_wins() -> None:
    class _Fixed:
        def __init__(self, name: str) -> None:
            self.name = name
            self.ran = False

        def applies(self, req) -> bool:
            return True

        def run(self, req) -> StrategyOutput:
            self.ran = True
            return StrategyOutput(audio=b"x", voice_id=self.name, strategy=self.name)

    first, second = _Fixed("a"), _Fixed("b")
    res = run_chain([first, second], SynthesisRequest(text="hi", provider=FakeProvider()))
    assert res.output.strategy == "a"
    assert first.ran and not second.ran


def test_no_applicable_strategy() -> None:
    with pytest.raises(SynthesisError):
        run_chain([TransientVoiceStrategy()], SynthesisRequest(text="hi", provider=FakeProvider()))


def test_transient_strategy_requires_preview() -> None:
    p = FakeProvider()
    with pytest.raises(ValueError):
        TransientVoiceStrategy().run(SynthesisRequest(text="hi", provider=p, bundle=_bundle(None)))
    assert p.calls == []

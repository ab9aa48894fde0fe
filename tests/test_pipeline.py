from __future__ import annotations

import json
from pathlib import Path

import pytest

from shelby_voice.errors import ValidationError
from shelby_voice.pipeline import normalize as norm
from shelby_voice.pipeline.process import process_and_store, process_voice_model
from shelby_voice.storage.gateway import StorageGateway
from shelby_voice.storage.local import LocalBlobStore
from tests._helpers.media import tone_wav


@pytest.fixture(autouse=True)
def _no_ffmpeg(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(norm, "ffmpeg_available", lambda _bin: False)


def test_process_voice_model_is_reproducible() -> None:
    audio = tone_wav(seconds=0.5)
    a, passthrough, reason = process_voice_model(
        audio, mime_type="audio/wav", name="N", owner="0xabc", voice_id="v1"
    )
    b, _, _ = process_voice_model(audio, mime_type="audio/wav", name="N", owner="0xabc", voice_id="v1")
    assert passthrough is True and reason == "ffmpeg_unavailable"
    assert a.files["embedding.bin"] == b.files["embedding.bin"]
    assert a.files["config.json"] == b.files["config.json"]


def test_process_and_store_writes_bundle(tmp_path: Path) -> None:
    gw = StorageGateway(LocalBlobStore(tmp_path / "store"))
    res = process_and_store(
        gw,
        tone_wav(seconds=6.0),
        mime_type="audio/wav",
        name="Narrator",
        owner="0xabc",
        voice_id="voice-1",
        description="warm",
    )
    assert res.put is not None
    assert res.put.uri == "shelby://0xabc/voices/voice-1"
    assert gw.list_parts(res.put.uri) == ["config.json", "embedding.bin", "meta.json", "preview.wav"]
    meta = json.loads(gw.get(res.put.uri, "meta.json"))
    assert meta["owner"] == "0xabc" and meta["voiceId"] == "voice-1"
    out = res.to_dict()
    assert out["success"] is True
    assert out["uri"] == res.put.uri
    assert out["normalized"] is False
    assert out["fallback_reason"] == "ffmpeg_unavailable"

    bundle = gw.read_bundle(res.put.uri)
    assert bundle.has_preview
    assert bundle.config["embeddingSize"] == 256


def test_process_and_store_custom_namespace(tmp_path: Path) -> None:
    gw = StorageGateway(LocalBlobStore(tmp_path / "store"))
    res = process_and_store(
        gw,
        tone_wav(seconds=0.2),
        mime_type="audio/wav",
        name="N",
        owner="0xabc",
        voice_id="v1",
        namespace="drafts",
    )
    assert res.put is not None and res.put.uri == "shelby://0xabc/drafts/v1"


def test_bad_segments_fail_before_processing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(*_a, **_k):
        raise AssertionError("normalizer should not run")

    monkeypatch.setattr("shelby_voice.pipeline.process.normalize_with_fallback", boom)
    gw = StorageGateway(LocalBlobStore(tmp_path / "store"))
    with pytest.raises(ValidationError):
        process_and_store(gw, b"x", mime_type="audio/wav", name="N", owner="bad/owner", voice_id="v1")

from __future__ import annotations

import hashlib
import sys

import numpy as np
import pytest

from shelby_voice.config import get_settings
from shelby_voice.errors import EmbeddingError
from shelby_voice.pipeline.embed import (
    DigestEmbedder,
    Embedding,
    ResemblyzerEmbedder,
    generate_embedding,
    get_embedder,
    itemsize,
)
from tests._helpers.media import tone_wav


def test_digest_embedder_is_deterministic() -> None:
    pcm = tone_wav(seconds=0.2)
    a = DigestEmbedder().embed(pcm)
    b = DigestEmbedder().embed(pcm)
    assert a.data == b.data
    assert a.size == 256 and a.format == "float32"
    assert len(a.data) == 256 * 4


def test_digest_embedder_values() -> None:
    pcm = b"voice"
    emb = DigestEmbedder(dim=40).embed(pcm)
    digest = hashlib.sha256(pcm).digest()
    vals = emb.values()
    assert vals.dtype == np.dtype("<f4")
    for i in (0, 31, 32, 39):
        assert vals[i] == pytest.approx((digest[i % 32] / 255.0 - 0.5) * 2.0, abs=1e-6)
    assert float(vals.min()) >= -1.0 and float(vals.max()) <= 1.0


def test_different_input_different_vector() -> None:
    e = DigestEmbedder()
    assert e.embed(b"a").data != e.embed(b"b").data


def test_empty_input_fails() -> None:
    with pytest.raises(EmbeddingError):
        DigestEmbedder().embed(b"")


def test_itemsize() -> None:
    assert itemsize("float32") == 4
    assert itemsize("float64") == 8
    with pytest.raises(KeyError):
        itemsize("int8")


def test_from_values_roundtrip() -> None:
    emb = Embedding.from_values(np.array([0.5, -0.25]), fmt="float32", provider="x")
    assert emb.size == 2
    assert emb.values().tolist() == [0.5, -0.25]


def test_get_embedder_respects_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EMBEDDING_DIM", "64")
    get_settings.cache_clear()
    e = get_embedder()
    assert isinstance(e, DigestEmbedder) and e.dim == 64
    assert generate_embedding(b"abc").size == 64
    assert isinstance(get_embedder("resemblyzer"), ResemblyzerEmbedder)
    assert isinstance(get_embedder("unknown"), DigestEmbedder)


def test_resemblyzer_rejects_non_wav() -> None:
    with pytest.raises(EmbeddingError):
        ResemblyzerEmbedder().embed(b"not a wav")


def test_resemblyzer_missing_library(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(sys.modules, "resemblyzer", None)
    with pytest.raises(EmbeddingError):
        ResemblyzerEmbedder().embed(tone_wav(seconds=0.2))

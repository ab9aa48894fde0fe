from __future__ import annotations

import hashlib
import json
import threading
from pathlib import Path

import pytest

from shelby_voice.errors import (
    ConflictError,
    ModelIncompleteError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from shelby_voice.storage import local as local_mod
from shelby_voice.storage.gateway import StorageGateway, content_id
from shelby_voice.storage.local import LocalBlobStore

SCENARIO_CONFIG = {
    "sampleRate": 16000,
    "channels": 1,
    "embeddingSize": 2,
    "embeddingFormat": "float32",
}


def _gw(tmp_path: Path, policy: str = "replace") -> StorageGateway:
    return StorageGateway(LocalBlobStore(tmp_path / "store"), overwrite_policy=policy)


def _bundle_parts() -> dict[str, bytes]:
    return {
        "embedding.bin": bytes([0x01, 0x02]),
        "config.json": json.dumps(SCENARIO_CONFIG).encode(),
    }


def test_scenario_put_then_get_embedding(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    res = gw.put("0xabc", "voices", "v1", _bundle_parts())
    assert res.uri == "shelby://0xabc/voices/v1"
    assert gw.get("shelby://0xabc/voices/v1", "embedding.bin") == bytes([0x01, 0x02])


def test_roundtrip_every_part_byte_identical(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    parts = {
        "embedding.bin": bytes(range(256)) * 4,
        "config.json": b'{"embeddingSize": 256, "embeddingFormat": "float32"}',
        "meta.json": b'{"name": "n"}',
        "preview.wav": b"RIFF" + b"\x00" * 100,
    }
    res = gw.put("Alice", "voices", "v2", parts)
    for name, data in parts.items():
        assert gw.get(res.uri, name) == data
    assert res.total_size == sum(len(v) for v in parts.values())
    assert gw.list_parts(res.uri) == sorted(parts)


def test_content_id_sorted_filename_order() -> None:
    a = {"b.bin": b"BB", "a.bin": b"AA"}
    b = {"a.bin": b"AA", "b.bin": b"BB"}
    assert content_id(a) == content_id(b)
    assert content_id(a) == hashlib.sha256(b"AABB").hexdigest()


def test_put_result_cid_matches(tmp_path: Path) -> None:
    parts = _bundle_parts()
    res = _gw(tmp_path).put("0xabc", "voices", "v1", parts)
    assert res.content_id == content_id(parts)
    assert res.to_dict()["cid"] == res.content_id


def test_get_missing_part_is_not_found(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    gw.put("0xabc", "voices", "v1", _bundle_parts())
    with pytest.raises(NotFoundError) as ei:
        gw.get("shelby://0xabc/voices/v1", "preview.wav")
    assert str(tmp_path) not in ei.value.public_message
    with pytest.raises(NotFoundError):
        gw.get("shelby://0xabc/voices/nope", "embedding.bin")


def test_operations_validate_before_storage(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    with pytest.raises(ValidationError):
        gw.get("not-a-uri", "embedding.bin")
    with pytest.raises(ValidationError):
        gw.get("shelby://0xabc/voices/v1", "../escape")
    with pytest.raises(ValidationError):
        gw.put("0xabc", "voices", "v1", {"../x": b"1"})
    with pytest.raises(ValidationError):
        gw.put("0xabc", "voices", "v1", {})
    with pytest.raises(ValidationError):
        gw.delete("shelby://0xabc/voices", "0xabc")
    assert not (tmp_path / "store").exists() or not any((tmp_path / "store").iterdir())


def test_delete_scenario_ownership(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    gw.put("0xabc", "voices", "v1", _bundle_parts())
    uri = "shelby://0xabc/voices/v1"
    with pytest.raises(UnauthorizedError):
        gw.delete(uri, "0xDEF")
    assert gw.exists(uri)
    res = gw.delete(uri, "0xABC")
    assert res.success is True and res.existed is True
    assert not gw.exists(uri)


@pytest.mark.parametrize("requester", ["0xdef", "0xab", "0xabcd", "", "alice"])
def test_delete_denied_for_non_owners(tmp_path: Path, requester: str) -> None:
    gw = _gw(tmp_path)
    gw.put("0xabc", "voices", "v1", _bundle_parts())
    gw.put(requester or "other", "voices", "v9", _bundle_parts())
    with pytest.raises(UnauthorizedError):
        gw.delete("shelby://0xabc/voices/v1", requester)


def test_delete_is_idempotent(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    gw.put("0xabc", "voices", "v1", _bundle_parts())
    first = gw.delete("shelby://0xabc/voices/v1", "0xabc")
    second = gw.delete("shelby://0xabc/voices/v1", "0xabc")
    assert first.success and first.existed
    assert second.success and not second.existed
    assert "message" in second.to_dict()


def test_delete_prunes_empty_directories(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    gw.put("0xabc", "voices", "v1", _bundle_parts())
    gw.delete("shelby://0xabc/voices/v1", "0xabc")
    assert not (tmp_path / "store" / "0xabc").exists()


def test_delete_keeps_siblings(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    gw.put("0xabc", "voices", "v1", _bundle_parts())
    gw.put("0xabc", "voices", "v2", _bundle_parts())
    gw.delete("shelby://0xabc/voices/v1", "0xabc")
    assert gw.list_objects("0xabc", "voices") == ["v2"]


def test_replace_policy_swaps_whole_part_set(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    gw.put("0xabc", "voices", "v1", {**_bundle_parts(), "preview.wav": b"old"})
    res = gw.put("0xabc", "voices", "v1", _bundle_parts())
    assert res.replaced is True
    assert gw.list_parts(res.uri) == ["config.json", "embedding.bin"]


def test_reject_policy(tmp_path: Path) -> None:
    gw = _gw(tmp_path, policy="reject")
    gw.put("0xabc", "voices", "v1", _bundle_parts())
    again = gw.put("0xabc", "voices", "v1", _bundle_parts())
    assert again.content_id == content_id(_bundle_parts())
    changed = {**_bundle_parts(), "embedding.bin": b"\x09\x09"}
    with pytest.raises(ConflictError):
        gw.put("0xabc", "voices", "v1", changed)
    assert gw.get("shelby://0xabc/voices/v1", "embedding.bin") == b"\x01\x02"


def test_invalid_policy_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        _gw(tmp_path, policy="merge")


def test_account_is_case_insensitive_on_disk(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    gw.put("0xABC", "voices", "v1", _bundle_parts())
    assert gw.get("shelby://0xabc/voices/v1", "embedding.bin") == b"\x01\x02"
    assert gw.list_objects("0xAbc", "voices") == ["v1"]


def test_read_bundle(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    gw.put("0xabc", "voices", "v1", {**_bundle_parts(), "preview.wav": b"PREVIEW"})
    b = gw.read_bundle("shelby://0xabc/voices/v1")
    assert b.embedding == b"\x01\x02"
    assert b.config["embeddingSize"] == 2
    assert b.meta is None
    assert b.has_preview and b.preview == b"PREVIEW"
    no_preview = gw.read_bundle("shelby://0xabc/voices/v1", include_preview=False)
    assert no_preview.preview is None


@pytest.mark.parametrize("drop", ["embedding.bin", "config.json"])
def test_read_bundle_incomplete(tmp_path: Path, drop: str) -> None:
    gw = _gw(tmp_path)
    parts = _bundle_parts()
    parts.pop(drop)
    parts["meta.json"] = b"{}"
    gw.put("0xabc", "voices", "v1", parts)
    with pytest.raises(ModelIncompleteError):
        gw.read_bundle("shelby://0xabc/voices/v1")


def test_read_bundle_missing_object(tmp_path: Path) -> None:
    with pytest.raises(ModelIncompleteError):
        _gw(tmp_path).read_bundle("shelby://0xabc/voices/ghost")


def test_read_bundle_tolerates_bad_meta(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    gw.put("0xabc", "voices", "v1", {**_bundle_parts(), "meta.json": b"not json"})
    assert gw.read_bundle("shelby://0xabc/voices/v1").meta is None


def test_staging_leaves_nothing_behind(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    gw.put("0xabc", "voices", "v1", _bundle_parts())
    gw.put("0xabc", "voices", "v1", _bundle_parts())
    staging = tmp_path / "store" / ".staging"
    assert not staging.exists() or list(staging.iterdir()) == []


def test_purge(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    gw.put("0xabc", "voices", "v1", _bundle_parts())
    gw.put("0xdef", "voices", "v2", _bundle_parts())
    assert gw.purge() == 2
    assert gw.list_objects("0xabc", "voices") == []
    assert gw.purge() == 0


def _writer_parts(tag: bytes, extra: str) -> dict[str, bytes]:
    return {
        "embedding.bin": tag * 8,
        "config.json": json.dumps({"embeddingSize": 2, "writer": tag.decode()}).encode(),
        extra: tag,
    }


def test_concurrent_puts_leave_one_whole_part_set(tmp_path: Path) -> None:
    gw = _gw(tmp_path)
    uri = "shelby://0xabc/voices/v1"
    sets = {
        "a": _writer_parts(b"a", "meta.json"),
        "b": _writer_parts(b"b", "preview.wav"),
    }
    errors: list[Exception] = []

    def put(barrier: threading.Barrier, parts: dict[str, bytes]) -> None:
        barrier.wait()
        try:
            gw.put("0xabc", "voices", "v1", parts)
        except Exception as ex:
            errors.append(ex)

    for _ in range(20):
        barrier = threading.Barrier(2)
        threads = [threading.Thread(target=put, args=(barrier, p)) for p in sets.values()]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []

        names = gw.list_parts(uri)
        stored = {n: gw.get(uri, n) for n in names}
        assert stored in list(sets.values())

    staging = tmp_path / "store" / ".staging"
    assert list(staging.iterdir()) == []


def test_interrupted_put_keeps_previous_set(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    gw = _gw(tmp_path)
    uri = "shelby://0xabc/voices/v1"
    before = _writer_parts(b"a", "meta.json")
    gw.put("0xabc", "voices", "v1", before)

    real_write = local_mod._fsync_write
    calls = {"n": 0}

    def flaky(path: Path, data: bytes) -> None:
        calls["n"] += 1
        if calls["n"] == 2:
            raise OSError(28, "No space left on device", str(path))
        real_write(path, data)

    monkeypatch.setattr(local_mod, "_fsync_write", flaky)
    with pytest.raises(StorageError) as ei:
        gw.put("0xabc", "voices", "v1", _writer_parts(b"b", "preview.wav"))
    assert ei.value.public_message == "Storage unavailable"
    assert str(tmp_path) not in ei.value.public_message

    assert {n: gw.get(uri, n) for n in gw.list_parts(uri)} == before
    assert list((tmp_path / "store" / ".staging").iterdir()) == []

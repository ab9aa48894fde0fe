from __future__ import annotations

from collections.abc import Iterator

import pytest

from shelby_voice.config import get_settings
from shelby_voice.utils.ffmpeg_safe import ffmpeg_available


@pytest.fixture(autouse=True)
def _test_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    root = tmp_path_factory.mktemp("sv_test")
    (root / "storage").mkdir(parents=True, exist_ok=True)
    (root / "logs").mkdir(parents=True, exist_ok=True)
    (root / "_state").mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("APP_ROOT", str(root))
    monkeypatch.setenv("SHELBY_STORAGE_ROOT", str(root / "storage"))
    monkeypatch.setenv("SHELBY_STATE_DIR", str(root / "_state"))
    monkeypatch.setenv("LOG_DIR", str(root / "logs"))
    monkeypatch.setenv("STORE_BACKEND", "local")
    monkeypatch.setenv("OVERWRITE_POLICY", "replace")
    monkeypatch.setenv("ENTITLEMENT_BACKEND", "ledger")
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    monkeypatch.delenv("SHELBY_RPC_TOKEN", raising=False)
    monkeypatch.delenv("STRICT_SECRETS", raising=False)
    monkeypatch.delenv("ENV", raising=False)
    monkeypatch.delenv("APP_ENV", raising=False)
    get_settings.cache_clear()
    ffmpeg_available.cache_clear()
    yield
    get_settings.cache_clear()
    ffmpeg_available.cache_clear()

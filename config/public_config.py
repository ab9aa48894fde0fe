from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_app_root() -> Path:
    """
    Default application root.

    Historically, this project assumes:
      - Docker: /app
      - Local/dev: current working directory
    """
    env = os.environ.get("APP_ROOT")
    if env:
        return Path(env).resolve()
    if Path("/app").exists():
        return Path("/app").resolve()
    return Path.cwd().resolve()


class PublicConfig(BaseSettings):
    """
    Non-sensitive config with safe defaults.

    Loaded from (in order):
      - process env
      - optional `.env` file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- core paths ---
    app_root: Path = Field(default_factory=_default_app_root, alias="APP_ROOT")
    # Local blob tree: <root>/<account>/<namespace>/<object_id>/<part>
    # If unset, defaults to "<APP_ROOT>/storage/shelby".
    storage_root: Path | None = Field(default=None, alias="SHELBY_STORAGE_ROOT")
    # Runtime-only state (entitlement ledger). Defaults to "<APP_ROOT>/_state".
    state_dir: Path | None = Field(default=None, alias="SHELBY_STATE_DIR")
    log_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "logs").resolve(), alias="LOG_DIR"
    )

    # --- logging ---
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_max_bytes: int = Field(default=5 * 1024 * 1024, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=3, alias="LOG_BACKUP_COUNT")

    # --- tool binaries ---
    ffmpeg_bin: str = Field(default="ffmpeg", alias="FFMPEG_BIN")
    ffmpeg_timeout_s: int = Field(default=120, alias="FFMPEG_TIMEOUT_S")
    # Retry once in pass-through mode when the transcoder fails.
    normalize_passthrough_on_error: bool = Field(
        default=True, alias="NORMALIZE_PASSTHROUGH_ON_ERROR"
    )

    # --- bundle pipeline ---
    target_sample_rate: int = Field(default=16000, alias="TARGET_SAMPLE_RATE")
    preview_seconds: int = Field(default=5, alias="PREVIEW_SECONDS")
    embedder: str = Field(default="digest", alias="EMBEDDER")  # digest|resemblyzer
    embedding_dim: int = Field(default=256, alias="EMBEDDING_DIM")
    model_version: str = Field(default="1.0.0", alias="MODEL_VERSION")
    default_namespace: str = Field(default="voices", alias="DEFAULT_NAMESPACE")

    # --- storage backend ---
    store_backend: str = Field(default="local", alias="STORE_BACKEND")  # local|rpc
    shelby_network: str = Field(default="testnet", alias="SHELBY_NETWORK")
    shelby_rpc_url: str | None = Field(default=None, alias="SHELBY_RPC_URL")
    shelby_rpc_timeout_s: float = Field(default=30.0, alias="SHELBY_RPC_TIMEOUT_S")
    overwrite_policy: str = Field(default="replace", alias="OVERWRITE_POLICY")  # replace|reject

    # --- entitlement ---
    entitlement_backend: str = Field(default="ledger", alias="ENTITLEMENT_BACKEND")  # ledger|deny
    entitlement_ledger_path: Path | None = Field(default=None, alias="ENTITLEMENT_LEDGER_PATH")

    # --- synthesis provider ---
    elevenlabs_base_url: str = Field(
        default="https://api.elevenlabs.io/v1", alias="ELEVENLABS_BASE_URL"
    )
    tts_model_id: str = Field(default="eleven_multilingual_v2", alias="TTS_MODEL_ID")
    # Fallback voice used when a transient voice cannot be registered (ElevenLabs "Rachel").
    tts_default_voice_id: str = Field(default="21m00Tcm4TlvDq8ikWAM", alias="TTS_DEFAULT_VOICE_ID")
    tts_stability: float = Field(default=0.5, alias="TTS_STABILITY")
    tts_similarity_boost: float = Field(default=0.75, alias="TTS_SIMILARITY_BOOST")
    tts_clone_similarity_boost: float = Field(default=0.85, alias="TTS_CLONE_SIMILARITY_BOOST")
    tts_timeout_s: float = Field(default=60.0, alias="TTS_TIMEOUT_S")

    # --- web ---
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")
    max_upload_mb: int = Field(default=200, alias="MAX_UPLOAD_MB")
    cors_origins: str = Field(default="", alias="CORS_ORIGINS")

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in (self.cors_origins or "").split(",") if o.strip()]

    def resolved_storage_root(self) -> Path:
        if self.storage_root is not None:
            return Path(self.storage_root).resolve()
        return (Path(self.app_root) / "storage" / "shelby").resolve()

    def resolved_state_dir(self) -> Path:
        if self.state_dir is not None:
            return Path(self.state_dir).resolve()
        return (Path(self.app_root) / "_state").resolve()

    def resolved_ledger_path(self) -> Path:
        if self.entitlement_ledger_path is not None:
            return Path(self.entitlement_ledger_path).resolve()
        return self.resolved_state_dir() / "purchases.json"

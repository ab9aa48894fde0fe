from __future__ import annotations

from pathlib import Path

from shelby_voice.config import get_settings
from shelby_voice.storage.base import BlobStore
from shelby_voice.storage.gateway import OVERWRITE_POLICIES, StorageGateway
from shelby_voice.storage.local import LocalBlobStore
from shelby_voice.storage.rpc import RpcBlobStore
from shelby_voice.utils.log import logger


def build_store(root: Path | None = None) -> BlobStore:
    """
    Build the blob store based on STORE_BACKEND.

    Falls back to LocalBlobStore if the RPC service is not configured.
    """
    s = get_settings()
    local_root = Path(root) if root is not None else s.resolved_storage_root()
    backend = str(getattr(s, "store_backend", "local") or "local").strip().lower()
    if backend == "rpc":
        url = str(s.shelby_rpc_url or "").strip()
        if not url:
            logger.warning("store_backend_rpc_missing_url")
            return LocalBlobStore(local_root)
        token = s.secret.shelby_rpc_token.get_secret_value() if s.secret.shelby_rpc_token else None
        return RpcBlobStore(
            url,
            token=token,
            network=str(s.shelby_network),
            timeout=float(s.shelby_rpc_timeout_s),
        )
    if backend and backend != "local":
        logger.warning("store_backend_invalid", value=str(backend))
    return LocalBlobStore(local_root)


def build_gateway(root: Path | None = None) -> StorageGateway:
    s = get_settings()
    policy = str(getattr(s, "overwrite_policy", "replace") or "replace").strip().lower()
    if policy not in OVERWRITE_POLICIES:
        logger.warning("overwrite_policy_invalid", value=policy, fallback="replace")
        policy = "replace"
    return StorageGateway(build_store(root), overwrite_policy=policy)

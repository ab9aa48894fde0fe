"""
Read/write eligibility for gateway-addressed voice models.

The owner (URI account segment, case-insensitive) always has access. Anyone else
is decided by an EntitlementOracle, which is treated as untrusted: errors,
non-bool answers and malformed input all deny.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from shelby_voice.config import get_settings
from shelby_voice.errors import UnauthorizedError, ValidationError
from shelby_voice.uri import StorageURI
from shelby_voice.utils.io import read_json, write_json
from shelby_voice.utils.log import logger


@runtime_checkable
class EntitlementOracle(Protocol):
    name: str

    def check(self, uri: StorageURI, account: str) -> bool: ...


class DenyAllOracle:
    name = "deny"

    def check(self, uri: StorageURI, account: str) -> bool:
        return False


class StaticOracle:
    """Fixed set of (uri, account) grants."""

    name = "static"

    def __init__(self, grants: dict[str, list[str]] | None = None) -> None:
        self._grants: dict[str, set[str]] = {}
        for uri, accounts in (grants or {}).items():
            key = _uri_key(StorageURI.parse(uri))
            self._grants[key] = {str(a).strip().lower() for a in accounts}

    def check(self, uri: StorageURI, account: str) -> bool:
        return str(account or "").strip().lower() in self._grants.get(_uri_key(uri), set())


def _uri_key(uri: StorageURI) -> str:
    return f"{uri.account.lower()}/{uri.namespace}/{uri.object_id}"


class LedgerFileOracle:
    """
    Purchase records kept as a JSON list:

      [{"voiceId", "name", "modelUri", "owner", "buyer", "price", "purchasedAt", "txHash"}]

    A record grants `buyer` read access to `modelUri`.
    """

    name = "ledger"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _records(self) -> list[dict[str, Any]]:
        data = read_json(self.path, default=[])
        if not isinstance(data, list):
            raise ValueError(f"ledger at {self.path} is not a list")
        return [r for r in data if isinstance(r, dict)]

    def check(self, uri: StorageURI, account: str) -> bool:
        want = _uri_key(uri)
        buyer = str(account or "").strip().lower()
        for rec in self._records():
            try:
                rec_uri = StorageURI.parse(str(rec.get("modelUri") or ""))
            except ValidationError:
                continue
            if _uri_key(rec_uri) == want and str(rec.get("buyer") or "").strip().lower() == buyer:
                return True
        return False

    def record_purchase(
        self,
        uri: str | StorageURI,
        buyer: str,
        *,
        name: str = "",
        price: float | None = None,
        tx_hash: str = "",
    ) -> dict[str, Any]:
        u = StorageURI.parse(uri)
        b = str(buyer or "").strip()
        if not b:
            raise ValidationError("buyer is required", public_message="Buyer account required")
        rec: dict[str, Any] = {
            "voiceId": u.object_id,
            "name": str(name or u.object_id),
            "modelUri": str(u),
            "owner": u.account,
            "buyer": b,
            "price": price,
            "purchasedAt": int(time.time() * 1000),
            "txHash": str(tx_hash or ""),
        }
        with self._lock:
            records = self._records() if self.path.exists() else []
            records.append(rec)
            write_json(self.path, records)
        logger.info("entitlement_recorded", uri=str(u), buyer=b)
        return rec


def build_oracle() -> EntitlementOracle:
    s = get_settings()
    backend = str(getattr(s, "entitlement_backend", "ledger") or "ledger").strip().lower()
    if backend == "deny":
        return DenyAllOracle()
    if backend != "ledger":
        logger.warning("entitlement_backend_invalid", value=backend)
    return LedgerFileOracle(s.resolved_ledger_path())


def verify_access(uri: str | StorageURI, requester_account: str | None, *, oracle: EntitlementOracle) -> bool:
    try:
        u = StorageURI.parse(uri)
    except ValidationError:
        return False
    requester = str(requester_account or "").strip()
    if not requester:
        return False
    if u.owned_by(requester):
        return True
    try:
        granted = oracle.check(u, requester)
    except Exception as ex:
        logger.warning(
            "entitlement_check_failed",
            uri=str(u),
            oracle=str(getattr(oracle, "name", type(oracle).__name__)),
            error=str(ex),
        )
        return False
    if granted is not True:
        logger.info("access_denied", uri=str(u), requester=requester)
        return False
    return True


def require_owner(uri: str | StorageURI, requester_account: str | None) -> StorageURI:
    u = StorageURI.parse(uri)
    if not u.owned_by(requester_account):
        logger.warning(
            "ownership_forbidden",
            resource="voice_model",
            user_id=str(requester_account or ""),
            owner_id=u.account,
            uri=str(u),
        )
        raise UnauthorizedError(f"{requester_account!r} does not own {u}")
    return u

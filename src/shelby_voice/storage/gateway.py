"""
Storage gateway: structured URIs -> sets of named blobs.

Every public operation parses and validates its URI/segments before touching the
underlying store. Writes publish a whole part set at once; reads of an object
that lacks required bundle parts are reported as incomplete, never as a valid
partial bundle.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from shelby_voice.errors import (
    BundleAssemblyError,
    ConflictError,
    ModelIncompleteError,
    NotFoundError,
    ValidationError,
)
from shelby_voice.pipeline.bundle import (
    CONFIG_FILE,
    EMBEDDING_FILE,
    META_FILE,
    PREVIEW_FILE,
    load_json_part,
)
from shelby_voice.security.access import require_owner
from shelby_voice.storage.base import BlobStore
from shelby_voice.uri import StorageURI, is_valid_segment
from shelby_voice.utils.log import logger

_FILENAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")

OVERWRITE_POLICIES = {"replace", "reject"}


def validate_filename(filename: str) -> str:
    f = str(filename or "")
    if not _FILENAME_RE.match(f):
        raise ValidationError(
            f"invalid part filename: {f!r}",
            public_message="Invalid filename",
        )
    return f


def content_id(parts: Mapping[str, bytes]) -> str:
    """
    SHA-256 over the part bytes concatenated in sorted filename order.
    """
    h = hashlib.sha256()
    for name in sorted(parts.keys()):
        h.update(bytes(parts[name]))
    return h.hexdigest()


@dataclass(frozen=True, slots=True)
class PutResult:
    uri: str
    content_id: str
    total_size: int
    replaced: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "cid": self.content_id,
            "size": int(self.total_size),
            "replaced": bool(self.replaced),
        }


@dataclass(frozen=True, slots=True)
class DeleteResult:
    success: bool
    uri: str
    existed: bool

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success, "uri": self.uri, "existed": self.existed}
        if not self.existed:
            out["message"] = "Object was already absent"
        return out


@dataclass(frozen=True, slots=True)
class BundleParts:
    uri: StorageURI
    embedding: bytes
    config: dict[str, Any]
    meta: dict[str, Any] | None = None
    preview: bytes | None = field(default=None, repr=False)

    @property
    def has_preview(self) -> bool:
        return bool(self.preview)


class StorageGateway:
    def __init__(self, store: BlobStore, *, overwrite_policy: str = "replace") -> None:
        policy = str(overwrite_policy or "replace").strip().lower()
        if policy not in OVERWRITE_POLICIES:
            raise ValueError(f"overwrite_policy must be one of {sorted(OVERWRITE_POLICIES)}")
        self.store = store
        self.overwrite_policy = policy

    # --- write ---

    def put(
        self, account: str, namespace: str, object_id: str, parts: Mapping[str, bytes]
    ) -> PutResult:
        uri = StorageURI.build(account, namespace, object_id)
        if not parts:
            raise ValidationError("no parts to write", public_message="No files provided")
        clean: dict[str, bytes] = {}
        for name, data in parts.items():
            if data is None:
                raise ValidationError(f"part {name!r} has no data", public_message="Empty part")
            clean[validate_filename(name)] = bytes(data)

        cid = content_id(clean)
        existing = self.store.list_parts(uri)
        if existing and self.overwrite_policy == "reject":
            prev = {n: self.store.read_part(uri, n) for n in existing}
            if content_id(prev) != cid or set(prev) != set(clean):
                logger.warning("storage_put_conflict", uri=str(uri))
                raise ConflictError(f"{uri} already holds different content")
            logger.info("storage_put_unchanged", uri=str(uri), cid=cid)
            return PutResult(uri=str(uri), content_id=cid, total_size=sum(map(len, clean.values())))

        self.store.write_object(uri, clean)
        total = sum(len(v) for v in clean.values())
        logger.info(
            "storage_put",
            uri=str(uri),
            cid=cid,
            size=total,
            parts=sorted(clean.keys()),
            replaced=bool(existing),
            backend=self.store.name,
        )
        return PutResult(uri=str(uri), content_id=cid, total_size=total, replaced=bool(existing))

    # --- read ---

    def get(self, uri: str | StorageURI, filename: str) -> bytes:
        u = StorageURI.parse(uri)
        return self.store.read_part(u, validate_filename(filename))

    def exists(self, uri: str | StorageURI) -> bool:
        return bool(self.store.list_parts(StorageURI.parse(uri)))

    def list_parts(self, uri: str | StorageURI) -> list[str]:
        return self.store.list_parts(StorageURI.parse(uri))

    def list_objects(self, account: str, namespace: str) -> list[str]:
        for label, v in (("account", account), ("namespace", namespace)):
            if not is_valid_segment(v):
                raise ValidationError(
                    f"invalid {label}: {v!r}", public_message=f"Invalid {label}"
                )
        return self.store.list_objects(account, namespace)

    def _get_optional(self, uri: StorageURI, filename: str) -> bytes | None:
        try:
            return self.store.read_part(uri, filename)
        except NotFoundError:
            return None

    def read_bundle(self, uri: str | StorageURI, *, include_preview: bool = True) -> BundleParts:
        """
        Fetch a bundle's parts concurrently.

        embedding.bin and config.json are required (ModelIncompleteError otherwise);
        meta.json and preview.wav are optional.
        """
        u = StorageURI.parse(uri)
        names = [EMBEDDING_FILE, CONFIG_FILE, META_FILE]
        if include_preview:
            names.append(PREVIEW_FILE)
        with ThreadPoolExecutor(max_workers=len(names)) as pool:
            futures = {n: pool.submit(self._get_optional, u, n) for n in names}
            got = {n: f.result() for n, f in futures.items()}

        missing = [n for n in (EMBEDDING_FILE, CONFIG_FILE) if not got.get(n)]
        if missing:
            logger.info("storage_bundle_incomplete", uri=str(u), missing=missing)
            raise ModelIncompleteError(
                f"{u} is missing {', '.join(missing)}",
                public_message="Voice model files not found",
            )
        try:
            config = load_json_part(got[CONFIG_FILE], part=CONFIG_FILE) or {}
        except BundleAssemblyError as ex:
            raise ModelIncompleteError(
                f"{u} has an unreadable config: {ex}",
                public_message="Voice model config is unreadable",
            ) from ex
        meta = None
        if got.get(META_FILE):
            try:
                meta = load_json_part(got[META_FILE], part=META_FILE)
            except BundleAssemblyError as ex:
                logger.warning("storage_bundle_meta_unreadable", uri=str(u), error=str(ex))
        return BundleParts(
            uri=u,
            embedding=got[EMBEDDING_FILE] or b"",
            config=config,
            meta=meta,
            preview=got.get(PREVIEW_FILE) or None,
        )

    # --- delete ---

    def delete(self, uri: str | StorageURI, requester_account: str) -> DeleteResult:
        u = StorageURI.parse(uri)
        require_owner(u, requester_account)
        existed = self.store.delete_object(u)
        if existed:
            logger.info("storage_delete", uri=str(u))
        else:
            logger.info("storage_delete_absent", uri=str(u))
        return DeleteResult(success=True, uri=str(u), existed=existed)

    def purge(self) -> int:
        removed = self.store.purge()
        logger.warning("storage_purged", removed=int(removed), backend=self.store.name)
        return removed

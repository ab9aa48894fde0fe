"""
Local blob store (default).

Canonical layout (root is settings.storage_root):

storage/shelby/
  <account>/                 lower-cased, so ownership is case-insensitive on disk too
    <namespace>/
      <object_id>/
        embedding.bin
        config.json
        meta.json
        preview.wav
  .staging/                  in-flight writes and deletes
"""

from __future__ import annotations

import errno
import os
import shutil
import uuid
from collections.abc import Mapping
from contextlib import suppress
from pathlib import Path

from shelby_voice.errors import NotFoundError, StorageError
from shelby_voice.uri import StorageURI
from shelby_voice.utils.io import ensure_dir
from shelby_voice.utils.log import logger

_STAGING = ".staging"
_PUBLISH_ATTEMPTS = 5


def _fsync_write(path: Path, data: bytes) -> None:
    with path.open("wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())


class LocalBlobStore:
    name = "local"

    def __init__(self, root: Path) -> None:
        self.root = Path(root).resolve()

    def _account_dir(self, account: str) -> Path:
        return self.root / str(account).lower()

    def _namespace_dir(self, account: str, namespace: str) -> Path:
        return self._account_dir(account) / str(namespace)

    def _object_dir(self, uri: StorageURI) -> Path:
        return self._namespace_dir(uri.account, uri.namespace) / uri.object_id

    def _staging_dir(self) -> Path:
        return ensure_dir(self.root / _STAGING)

    def write_object(self, uri: StorageURI, parts: Mapping[str, bytes]) -> None:
        """
        Stage every part under .staging/<id>/ then publish the directory with a
        rename, so readers see either the previous part set or the new one.
        """
        target = self._object_dir(uri)
        staging: Path | None = None
        try:
            staging = self._staging_dir() / uuid.uuid4().hex
            staging.mkdir(parents=True)
            for filename, data in parts.items():
                _fsync_write(staging / filename, bytes(data))
            ensure_dir(target.parent)
            self._publish(staging, target)
        except OSError as ex:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)
            raise StorageError(f"local write failed for {uri}: {ex}") from ex

    def _publish(self, staging: Path, target: Path) -> None:
        last: OSError | None = None
        for _ in range(_PUBLISH_ATTEMPTS):
            old = self._staging_dir() / f"{uuid.uuid4().hex}.old"
            moved = False
            try:
                os.replace(target, old)
                moved = True
            except FileNotFoundError:
                moved = False
            try:
                os.replace(staging, target)
            except OSError as ex:
                if moved:
                    # put the previous set back unless a concurrent writer already published
                    with suppress(OSError):
                        os.replace(old, target)
                    shutil.rmtree(old, ignore_errors=True)
                if ex.errno not in (errno.ENOTEMPTY, errno.EEXIST):
                    shutil.rmtree(staging, ignore_errors=True)
                    raise
                last = ex
                continue
            if moved:
                shutil.rmtree(old, ignore_errors=True)
            return
        shutil.rmtree(staging, ignore_errors=True)
        raise last or OSError("publish failed")

    def read_part(self, uri: StorageURI, filename: str) -> bytes:
        p = self._object_dir(uri) / filename
        try:
            return p.read_bytes()
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError) as ex:
            raise NotFoundError(
                f"{filename} not found in {uri}",
                public_message=f"File {filename} not found in {uri}",
            ) from ex
        except OSError as ex:
            raise StorageError(f"local read failed for {uri}/{filename}: {ex}") from ex

    def list_parts(self, uri: StorageURI) -> list[str]:
        d = self._object_dir(uri)
        try:
            # a concurrent publish may swap the directory out from under us
            return sorted(p.name for p in d.iterdir() if p.is_file() and not p.name.startswith("."))
        except (FileNotFoundError, NotADirectoryError):
            return []
        except OSError as ex:
            raise StorageError(f"local list failed for {uri}: {ex}") from ex

    def list_objects(self, account: str, namespace: str) -> list[str]:
        d = self._namespace_dir(account, namespace)
        try:
            return sorted(p.name for p in d.iterdir() if p.is_dir() and not p.name.startswith("."))
        except (FileNotFoundError, NotADirectoryError):
            return []
        except OSError as ex:
            raise StorageError(f"local list failed for {account}/{namespace}: {ex}") from ex

    def delete_object(self, uri: StorageURI) -> bool:
        d = self._object_dir(uri)
        existed = False
        try:
            trash = self._staging_dir() / f"{uuid.uuid4().hex}.del"
            try:
                os.replace(d, trash)
                existed = True
            except FileNotFoundError:
                existed = False
            if existed:
                shutil.rmtree(trash)
        except OSError as ex:
            raise StorageError(f"local delete failed for {uri}: {ex}") from ex
        self._prune_empty(uri)
        return existed

    def _prune_empty(self, uri: StorageURI) -> None:
        # rmdir only succeeds on empty dirs; anything else is left alone
        for p in (
            self._namespace_dir(uri.account, uri.namespace),
            self._account_dir(uri.account),
        ):
            with suppress(OSError):
                p.rmdir()

    def purge(self) -> int:
        if not self.root.exists():
            return 0
        removed = 0
        for account in sorted(self.root.iterdir()):
            if not account.is_dir() or account.name == _STAGING:
                continue
            for ns in sorted(account.iterdir()):
                if not ns.is_dir():
                    continue
                for obj in sorted(ns.iterdir()):
                    if obj.is_dir():
                        shutil.rmtree(obj)
                        removed += 1
                        logger.info(
                            "storage_purge_object",
                            account=account.name,
                            namespace=ns.name,
                            object_id=obj.name,
                        )
            shutil.rmtree(account)
        shutil.rmtree(self.root / _STAGING, ignore_errors=True)
        return removed

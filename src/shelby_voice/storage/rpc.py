"""
Network storage service client (STORE_BACKEND=rpc).

Speaks the Shelby RPC shape:
  POST /rpc/v1/upload    multipart parts + X-Account / X-Shelby-Namespace / X-Voice-Id
  POST /rpc/v1/download  {uri, filename, account, namespace, voiceId} -> bytes
  POST /rpc/v1/list      {uri} or {account, namespace} -> {"items": [...]}
  POST /rpc/v1/delete    {uri} -> {"existed": bool}
  POST /rpc/v1/purge     {} -> {"removed": int}
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from shelby_voice.errors import NotFoundError, StorageError
from shelby_voice.uri import StorageURI
from shelby_voice.utils.log import logger


class RpcBlobStore:
    name = "rpc"

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        network: str = "testnet",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"X-Shelby-Network": str(network)}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = str(base_url).rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=float(timeout),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = self._client.post(path, **kwargs)
        except httpx.HTTPError as ex:
            raise StorageError(f"storage rpc {path} failed: {ex}") from ex
        return resp

    @staticmethod
    def _raise_for(resp: httpx.Response, *, op: str) -> None:
        if resp.is_success:
            return
        text = resp.text[:2000]
        if resp.status_code == 404:
            raise NotFoundError(f"storage rpc {op}: not found ({text})", public_message="Not found")
        raise StorageError(f"storage rpc {op} failed: {resp.status_code} {text}")

    def write_object(self, uri: StorageURI, parts: Mapping[str, bytes]) -> None:
        files = [(name, (name, bytes(data), "application/octet-stream")) for name, data in parts.items()]
        resp = self._post(
            "/rpc/v1/upload",
            files=files,
            headers={
                "X-Account": uri.account,
                "X-Shelby-Namespace": uri.namespace,
                "X-Voice-Id": uri.object_id,
            },
        )
        self._raise_for(resp, op="upload")
        logger.info("storage_rpc_upload", uri=str(uri), parts=sorted(parts.keys()))

    def read_part(self, uri: StorageURI, filename: str) -> bytes:
        resp = self._post(
            "/rpc/v1/download",
            json={
                "uri": str(uri),
                "filename": filename,
                "account": uri.account,
                "namespace": uri.namespace,
                "voiceId": uri.object_id,
            },
        )
        if resp.status_code == 404:
            raise NotFoundError(
                f"{filename} not found in {uri}",
                public_message=f"File {filename} not found in {uri}",
            )
        self._raise_for(resp, op="download")
        return resp.content

    def _items(self, resp: httpx.Response, *, op: str) -> list[str]:
        self._raise_for(resp, op=op)
        try:
            data = resp.json()
        except ValueError as ex:
            raise StorageError(f"storage rpc {op} returned invalid JSON") from ex
        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return []
        return sorted(str(x) for x in items)

    def list_parts(self, uri: StorageURI) -> list[str]:
        resp = self._post("/rpc/v1/list", json={"uri": str(uri)})
        if resp.status_code == 404:
            return []
        return self._items(resp, op="list")

    def list_objects(self, account: str, namespace: str) -> list[str]:
        resp = self._post("/rpc/v1/list", json={"account": account, "namespace": namespace})
        if resp.status_code == 404:
            return []
        return self._items(resp, op="list")

    def delete_object(self, uri: StorageURI) -> bool:
        resp = self._post("/rpc/v1/delete", json={"uri": str(uri)})
        if resp.status_code == 404:
            return False
        self._raise_for(resp, op="delete")
        try:
            data = resp.json()
        except ValueError:
            data = {}
        return bool(data.get("existed", True)) if isinstance(data, dict) else True

    def purge(self) -> int:
        resp = self._post("/rpc/v1/purge", json={})
        self._raise_for(resp, op="purge")
        try:
            data = resp.json()
        except ValueError:
            data = {}
        return int(data.get("removed") or 0) if isinstance(data, dict) else 0

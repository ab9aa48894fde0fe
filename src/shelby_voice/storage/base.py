from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from shelby_voice.uri import StorageURI


class BlobStore(Protocol):
    """
    Underlying store for the gateway: one object (URI) holds a set of named parts.

    Implementations raise NotFoundError for a missing part and StorageError for
    any other I/O failure. URI validation happens in the gateway.
    """

    name: str

    def write_object(self, uri: StorageURI, parts: Mapping[str, bytes]) -> None: ...

    def read_part(self, uri: StorageURI, filename: str) -> bytes: ...

    def list_parts(self, uri: StorageURI) -> list[str]: ...

    def list_objects(self, account: str, namespace: str) -> list[str]: ...

    def delete_object(self, uri: StorageURI) -> bool: ...

    def purge(self) -> int: ...

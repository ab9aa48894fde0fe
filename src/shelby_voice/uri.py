"""
Structured storage URIs: ``shelby://<account>/<namespace>/<object_id>``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from shelby_voice.errors import ValidationError

SCHEME = "shelby"
PREFIX = f"{SCHEME}://"

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._~-]+$")
_URI_RE = re.compile(r"^shelby://([^/]+)/([^/]+)/([^/]+)$")


def is_valid_segment(value: str) -> bool:
    v = str(value or "")
    # leading dots are reserved for store-internal dirs (and rule out "." / "..")
    if v.startswith("."):
        return False
    return bool(_SEGMENT_RE.match(v))


def _require_segment(name: str, value: str) -> str:
    v = str(value or "")
    if not is_valid_segment(v):
        raise ValidationError(
            f"invalid {name} segment: {v!r}",
            public_message=f"Invalid {name}: must be a non-empty URL-safe token",
        )
    return v


@dataclass(frozen=True, slots=True)
class StorageURI:
    account: str
    namespace: str
    object_id: str

    def __post_init__(self) -> None:
        _require_segment("account", self.account)
        _require_segment("namespace", self.namespace)
        _require_segment("object_id", self.object_id)

    def __str__(self) -> str:
        return f"{PREFIX}{self.account}/{self.namespace}/{self.object_id}"

    def owned_by(self, account: str | None) -> bool:
        """Case-insensitive ownership check against the account segment."""
        a = str(account or "").strip()
        return bool(a) and a.lower() == self.account.lower()

    def to_dict(self) -> dict[str, str]:
        return {"account": self.account, "namespace": self.namespace, "object_id": self.object_id}

    @classmethod
    def build(cls, account: str, namespace: str, object_id: str) -> StorageURI:
        return cls(account=str(account), namespace=str(namespace), object_id=str(object_id))

    @classmethod
    def parse(cls, uri: str | StorageURI) -> StorageURI:
        if isinstance(uri, StorageURI):
            return uri
        m = _URI_RE.match(str(uri or ""))
        if not m:
            raise ValidationError(
                f"invalid storage URI: {uri!r}",
                public_message="Invalid URI: expected shelby://<account>/<namespace>/<objectId>",
            )
        return cls(account=m.group(1), namespace=m.group(2), object_id=m.group(3))


def build_uri(account: str, namespace: str, object_id: str) -> str:
    return str(StorageURI.build(account, namespace, object_id))


def parse_uri(uri: str) -> StorageURI:
    return StorageURI.parse(uri)


def is_storage_uri(uri: str) -> bool:
    try:
        StorageURI.parse(uri)
    except ValidationError:
        return False
    return True

from __future__ import annotations

import mimetypes
from typing import Any

from fastapi import HTTPException, Request, UploadFile

from shelby_voice.config import get_settings
from shelby_voice.errors import ValidationError
from shelby_voice.security.access import EntitlementOracle
from shelby_voice.storage.gateway import StorageGateway
from shelby_voice.synthesis.dispatcher import SynthesisDispatcher
from shelby_voice.synthesis.providers import ELEVENLABS, SynthesisProvider

_CHUNK = 1024 * 1024

_CONTENT_TYPES = {
    ".bin": "application/octet-stream",
    ".json": "application/json",
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
}


def _get_gateway(request: Request) -> StorageGateway:
    gw = getattr(request.app.state, "gateway", None)
    if gw is None:
        raise HTTPException(status_code=500, detail="Storage gateway not initialized")
    return gw


def _get_dispatcher(request: Request) -> SynthesisDispatcher:
    d = getattr(request.app.state, "dispatcher", None)
    if d is None:
        raise HTTPException(status_code=500, detail="Synthesis dispatcher not initialized")
    return d


def _get_oracle(request: Request) -> EntitlementOracle:
    return _get_dispatcher(request).oracle


def _get_provider(request: Request, name: str = ELEVENLABS) -> SynthesisProvider:
    p = _get_dispatcher(request).providers.get(name)
    if p is None:
        raise HTTPException(status_code=503, detail=f"Provider {name} not configured")
    return p


def content_type_for(filename: str) -> str:
    name = str(filename or "").lower()
    for ext, ctype in _CONTENT_TYPES.items():
        if name.endswith(ext):
            return ctype
    guess, _ = mimetypes.guess_type(name)
    return guess or "application/octet-stream"


async def read_upload(upload: UploadFile, *, label: str = "file") -> bytes:
    """Read an upload into memory, bounded by MAX_UPLOAD_MB."""
    limit = int(get_settings().max_upload_mb) * 1024 * 1024
    buf = bytearray()
    while True:
        chunk = await upload.read(_CHUNK)
        if not chunk:
            break
        buf.extend(chunk)
        if len(buf) > limit:
            raise HTTPException(status_code=413, detail=f"{label} exceeds {limit // (1024 * 1024)}MB")
    return bytes(buf)


async def json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("request body is not JSON", public_message="Invalid JSON body") from None
    if not isinstance(body, dict):
        raise ValidationError("request body must be an object", public_message="Invalid JSON body")
    return body


def require_fields(body: dict[str, Any], *names: str) -> list[str]:
    out: list[str] = []
    missing: list[str] = []
    for n in names:
        v = str(body.get(n) or "").strip()
        if not v:
            missing.append(n)
        out.append(v)
    if missing:
        raise ValidationError(
            f"missing fields: {missing}",
            public_message=f"Missing required fields: {', '.join(missing)}",
        )
    return out

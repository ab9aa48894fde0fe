from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, File, Form, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from shelby_voice.errors import ValidationError
from shelby_voice.pipeline.process import process_and_store
from shelby_voice.utils.log import set_account
from shelby_voice.web.routes.common import _get_gateway, _get_provider, read_upload

router = APIRouter(tags=["voice"])


@router.post("/api/voice/process")
async def process_voice(
    request: Request,
    audio: UploadFile = File(...),
    name: str = Form(...),
    owner: str = Form(...),
    voiceId: str = Form(...),  # noqa: N803
    description: str | None = Form(default=None),
    namespace: str | None = Form(default=None),
) -> dict[str, Any]:
    if not str(name).strip() or not str(owner).strip() or not str(voiceId).strip():
        raise ValidationError("missing fields", public_message="Missing required fields")
    set_account(owner)
    data = await read_upload(audio, label="audio")
    if not data:
        raise ValidationError("empty audio upload", public_message="Audio file is required")
    mime = str(audio.content_type or "audio/wav")
    res = await run_in_threadpool(
        process_and_store,
        _get_gateway(request),
        data,
        mime_type=mime,
        name=name.strip(),
        owner=owner.strip(),
        voice_id=voiceId.strip(),
        description=(description or "").strip() or None,
        namespace=namespace,
    )
    return res.to_dict()


@router.post("/api/elevenlabs/clone")
async def clone_voice(
    request: Request,
    audio: UploadFile = File(...),
    name: str | None = Form(default=None),
    description: str | None = Form(default=None),
) -> dict[str, Any]:
    data = await read_upload(audio, label="audio")
    if not data:
        raise ValidationError("empty audio upload", public_message="Audio file is required")
    voice_name = (name or "").strip() or f"shelby-voice-{int(time.time() * 1000)}"
    provider = _get_provider(request)
    voice_id = await run_in_threadpool(
        provider.register_voice,
        data,
        voice_name,
        description=(description or "").strip() or None,
        filename=str(audio.filename or "audio.wav"),
    )
    return {"success": True, "voice_id": voice_id, "name": voice_name}
